NAME_COLUMN = "Name"
EMAIL_COLUMN = "Email"

PREVIEW_SAMPLE_NAME = "Sample Name"
PREVIEW_FALLBACK_FILENAME = "Certificate"

TEMPLATE_FORMATS = ("PNG", "JPEG")
SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm", ".xls", ".csv")

DEFAULT_FONT_FAMILY = "CustomFont"
DEFAULT_FONT_SIZE_PX = 80
DEFAULT_FONT_COLOR = "#000000"
DEFAULT_X_PERCENT = 50.0
DEFAULT_Y_PERCENT = 52.0

# Auto-shrink variant: step down from the requested size until the text fits.
FIT_MIN_FONT_SIZE_PX = 30
FIT_STEP_PX = 2

ARCHIVE_COMPRESSLEVEL = 9
ARCHIVE_PREFIX = "certificates_"

DEFAULT_MAIL_WORKERS = 8

DEFAULT_MAIL_SUBJECT = "Your certificate, {{ name }}"
DEFAULT_MAIL_BODY = (
    "Dear {{ name }},\n\n"
    "Congratulations! Please find your certificate attached.\n\n"
    "Best regards"
)
