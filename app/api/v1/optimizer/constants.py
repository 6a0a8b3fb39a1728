"""Constants for optimizer routes."""

SERVICE_NOT_CONFIGURED_DETAIL = "Optimizer service is not configured"
JOB_NOT_FOUND_DETAIL = "Job not found"
SITEMAP_FETCH_FAILED_DETAIL = "Failed to fetch sitemap"

PROGRESS_STREAM_MEDIA_TYPE = "text/event-stream"
