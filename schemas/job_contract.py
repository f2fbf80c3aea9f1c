# User value: This file pins the extraction backend contract so operators see consistent job tracking.
JOB_STATUS_RUNNING = "running"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

TERMINAL_STATUSES = (
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
)

MONITOR_IDLE = "idle"
MONITOR_POLLING = "polling"
MONITOR_STOPPED = "stopped"

# Backend endpoints, relative to EXTRACTOR_API_URL.
FETCH_FIELDS_PATH = "/ocr/auto-extract/fetch-fields"
PREVIEW_PATH = "/ocr/auto-extract/preview"
START_PATH = "/ocr/auto-extract/start"
STATUS_PATH = "/ocr/auto-extract/status/{job_id}"

DUPLICATE_JOB_STATUS_CODE = 409

FORM_APP_LINK_NAME = "app_link_name"
FORM_REPORT_LINK_NAME = "report_link_name"
FORM_ATTACHMENT_A_FIELD = "bank_field_name"
FORM_ATTACHMENT_B_FIELD = "bill_field_name"
FORM_FILTER_CRITERIA = "filter_criteria"
FORM_STORE_IMAGES = "store_images"
FORM_SELECTED_RECORD_IDS = "selected_record_ids"

