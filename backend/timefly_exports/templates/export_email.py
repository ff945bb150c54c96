"""HTML body of the "export ready" e-mail."""

from __future__ import annotations

from datetime import datetime
from html import escape
from typing import Optional

EXPORT_EMAIL_SUBJECT = "Your TimeFly Data Export is Ready"


def _long_date(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year}"


def render_export_email(
    *,
    total_entries: int,
    download_url: str,
    export_date: datetime,
    expires_at: datetime,
    file_size_bytes: int,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> str:
    size_mb = file_size_bytes / (1024 * 1024)
    date_range = f"{start_date or 'All time'} to {end_date or 'Present'}"
    url = escape(download_url, quote=True)

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>TimeFly Data Export</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Helvetica, Arial, sans-serif;
           line-height: 1.5; color: #E5E5E5; background-color: #1E1E1E; margin: 0; padding: 0; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 32px 24px; }}
    .card {{ background-color: #2A2A2A; border-radius: 16px; padding: 32px; }}
    h1 {{ color: #FFFFFF; font-size: 24px; text-align: center; margin: 0 0 32px 0; }}
    .label {{ color: #999999; font-size: 14px; }}
    .value {{ color: #E87C58; font-weight: 500; font-size: 14px; }}
    .download-button {{ display: block; background-color: #E87C58; color: #FFFFFF; text-decoration: none;
                        padding: 16px 24px; border-radius: 8px; text-align: center; margin: 32px 0; }}
    .expiration-notice {{ border: 1px solid #E87C58; border-radius: 8px; padding: 12px 16px; color: #E87C58; }}
    .footer {{ text-align: center; color: #999999; font-size: 14px; margin-top: 32px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="card">
      <h1>Your Data Export is Ready</h1>
      <p><span class="label">Total entries</span> <span class="value">{total_entries:,}</span></p>
      <p><span class="label">Export date</span> <span class="value">{_long_date(export_date)}</span></p>
      <p><span class="label">Date range</span> <span class="value">{escape(date_range)}</span></p>
      <p><span class="label">File size</span> <span class="value">{size_mb:.2f} MB</span></p>
      <a href="{url}" class="download-button">Download Export</a>
      <div class="expiration-notice">This export will expire on {_long_date(expires_at)}</div>
    </div>
    <div class="footer">
      <p>If you have any questions or need assistance,</p>
      <p>our support team is here to help.</p>
    </div>
  </div>
</body>
</html>
"""
