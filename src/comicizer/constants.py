"""Centralized constants for comicizer.

This module contains the hardcoded defaults used throughout the codebase.
Runtime code never reads these directly for provider settings; they only
seed the defaults of ``ComicizerConfig``, which is passed around explicitly.
"""

from __future__ import annotations

# =============================================================================
# Providers
# =============================================================================

PROVIDER_OPENROUTER = "openrouter"
PROVIDER_CRSAI = "crsai"

DEFAULT_OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_OPENROUTER_TEXT_MODEL = "google/gemini-3-pro-preview"
DEFAULT_OPENROUTER_IMAGE_MODEL = "google/gemini-3-pro-image-preview"
DEFAULT_APP_REFERER = "http://localhost:3000"
DEFAULT_APP_TITLE = "Paper Comicizer"

DEFAULT_CRSAI_BASE_URL = "https://grsai.dakka.com.cn"
DEFAULT_CRSAI_TEXT_MODEL = "gemini-2.5-pro"
DEFAULT_CRSAI_IMAGE_MODEL = "nano-banana-pro"

CHAT_COMPLETIONS_PATH = "/chat/completions"
CRSAI_CHAT_PATH = "/v1/chat/completions"
CRSAI_DRAW_PATH = "/v1/draw/nano-banana"
CRSAI_RESULT_PATH = "/v1/draw/result"
CRSAI_CREDITS_PATH = "/client/common/getCredits"
OPENROUTER_MODELS_PATH = "/models"

# CRSAI response codes
CRSAI_CODE_OK = 0
CRSAI_CODE_NOT_FOUND = -22

# Environment variables consulted for API keys when no stored key is valid
API_KEY_ENV_VARS: dict[str, str] = {
    PROVIDER_OPENROUTER: "OPENROUTER_API_KEY",
    PROVIDER_CRSAI: "CRSAI_API_KEY",
}

# =============================================================================
# Generation
# =============================================================================

DEFAULT_ASPECT_RATIO = "2:3"
DEFAULT_IMAGE_SIZE = "1K"
DEFAULT_ANALYSIS_TEMPERATURE = 0.7
DEFAULT_PLANNING_TEMPERATURE = 0.3
DEFAULT_IMAGE_TEMPERATURE = 0.85
DEFAULT_IMAGE_MIME_TYPE = "image/png"

# =============================================================================
# Polling
# =============================================================================

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_POLL_MAX_ATTEMPTS = 60

# =============================================================================
# Progress (percent)
# =============================================================================

PROGRESS_ANALYZING = 5
PROGRESS_PLANNING = 20
PROGRESS_GENERATING = 30
PROGRESS_GENERATING_SPAN = 70
PROGRESS_COMPLETE = 100

# =============================================================================
# HTTP / Diagnostics
# =============================================================================

DEFAULT_REQUEST_TIMEOUT = 300  # seconds, PDF analysis can be slow
DEFAULT_PREVIEW_CHARS = 500  # Bounded previews of raw payloads in logs/errors

# =============================================================================
# Logging
# =============================================================================

DEFAULT_LOG_LEVEL = "DEBUG"
DEFAULT_LOG_ROTATION = "10 MB"
DEFAULT_LOG_RETENTION = "7 days"

# =============================================================================
# Paths and Filenames
# =============================================================================

CONFIG_FILENAME = "comicizer.json"
DEFAULT_USER_DIR = "~/.comicizer"
API_KEYS_FILENAME = "api_keys.json"
DEFAULT_LOG_DIR = "~/.comicizer/logs"
DEFAULT_OUTPUT_DIR = "./output"
MANIFEST_FILENAME = "comic.json"

PDF_MIME_TYPE = "application/pdf"
MAX_DOCUMENT_SIZE = 50 * 1024 * 1024  # 50 MB - uploaded paper
