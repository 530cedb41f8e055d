# -*- coding: utf-8 -*-
"""
Configuration data: defaults, settings keys, external tools, and limits.
Pure data only - no functions, no side effects at import time.
"""

# ============================================================================
# SETTINGS FILE
# ============================================================================

default_settings_file = "settings.yaml"

password_env_var = "MAILPRINTER_PASSWORD"

required_keys = ["IMAPUri", "Username", "DestinationFolder"]

# key -> (expected type, default)
optional_keys = {
    "Password": (str, None),
    "SourceFolder": (str, "INBOX"),
    "TLS": (bool, True),
    "DebugLevel": (int, 0),
    "PollInterval": (int, 300),
    "TempDirectory": (str, None),
    "RenderCommand": (str, "wkhtmltopdf"),
    "PrintCommand": (str, "lp"),
    "BleachHTML": (bool, True),
    "HTMLAsText": (bool, False),
}

# ============================================================================
# SERVER SETTINGS
# ============================================================================

imaps_port = 993
imap_port = 143

seen_flag = r"\Seen"
deleted_flag = r"\Deleted"

# BODY.PEEK leaves \Seen alone; flagging is done explicitly at the end of a run
fetch_items = "(BODY.PEEK[])"

# ============================================================================
# PIPELINE LIMITS
# ============================================================================

message_queue_size = 10

# ============================================================================
# ARTIFACTS
# ============================================================================

html_suffix = ".html"
text_suffix = ".txt"
pdf_suffix = ".pdf"

header_separator = "====================================\n\n\n\n"

# Extensions accepted from an attachment's declared filename, per content type
attachment_extensions = {
    "application/pdf": [".pdf"],
    "image/jpeg": [".jpg", ".jpeg", ".jpe"],
    "image/png": [".png"],
    "image/gif": [".gif"],
    "image/tiff": [".tif", ".tiff"],
    "image/bmp": [".bmp"],
    "image/webp": [".webp"],
}

# Exit code both external tools report on success
expected_exit_code = 0
