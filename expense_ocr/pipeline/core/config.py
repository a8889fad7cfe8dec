# =============================================================================
# Pipeline Configuration
# =============================================================================

MAX_PDF_PAGES = 5  # Scanned PDFs: only the first pages are rasterized and OCR'd
RASTER_DPI = 300
PDFIUM_SCALE = 3  # 72 dpi * 3 ~= 216 dpi
TEXT_LAYER_MIN_CHARS = 50  # Stripped text-layer length that counts as born-digital

# Blank-page check
BLANK_CHECK_WINDOW = 100  # Top-left window size in pixels
BLANK_PIXEL_TOLERANCE = 10  # Max deviation from pure white (255)

# Run artifacts (page images, result snapshot), relative to RUNS_DIR
PAGES_DIR = "pages"
PAGE_IMAGE_FILE = "page_{page:03d}.png"
RESULT_FILE = "result.json"

# Storage folder for uploads awaiting OCR
UPLOAD_FOLDER = "ocr-temp"


# =============================================================================
# Confidence levels
# =============================================================================

LOCAL_TEXT_LAYER_CONFIDENCE = 0.65  # Local extractor read a PDF text layer
LOCAL_FILENAME_CONFIDENCE = 0.3  # Local extractor only guessed from the file name
BORN_DIGITAL_CONFIDENCE = 0.7  # Rasterizer text layer, no OCR needed
TESSERACT_MAX_CONFIDENCE = 0.75
GOOGLE_DEFAULT_CONFIDENCE = 0.8
AZURE_DEFAULT_CONFIDENCE = 0.85


# =============================================================================
# Field extraction
# =============================================================================

DEFAULT_VAT_RATE = "0.05"  # Regional VAT rate used for estimates
DESCRIPTION_MAX_CHARS = 2000
RAW_TEXT_PREVIEW_CHARS = 500  # Raw text kept in OcrResult.fields
MIN_FALLBACK_AMOUNT = 10
MAX_FALLBACK_AMOUNT = 1_000_000
MIN_YEAR = 2000
MAX_YEAR = 2100


# =============================================================================
# Category detection
# =============================================================================

CATEGORY_NAME_SCORE = 10
CATEGORY_KEYWORD_SCORE = 5
CATEGORY_DESCRIPTION_WORD_SCORE = 2
CATEGORY_DESCRIPTION_MIN_WORD_LEN = 4
CATEGORY_MIN_SCORE = 5


# =============================================================================
# External Service Timeouts (seconds)
# =============================================================================

PROVIDER_TIMEOUT_SECONDS = 60
LLM_REQUEST_TIMEOUT_SECONDS = 30
BROKER_REPROBE_SECONDS = 30
BROKER_PING_TIMEOUT_SECONDS = 5
ERROR_BODY_MAX_CHARS = 500


# =============================================================================
# Retry Configuration
# =============================================================================

PROVIDER_MAX_ATTEMPTS = 3
INITIAL_BACKOFF = 0.5  # seconds
BACKOFF_MULTIPLIER = 2
MAX_RETRIES = 5  # Job store writes
CIRCUIT_FAILURE_THRESHOLD = 5
CIRCUIT_TIMEOUT_SECONDS = 60


# =============================================================================
# Validation Limits
# =============================================================================

MAX_FILE_SIZE_MB = 20

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/png",
        "image/tiff",
        "image/webp",
    }
)
