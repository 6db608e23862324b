"""
HTML rendering for the admin upload page.

``render_page`` wraps a content fragment in the shared document shell. It does
not escape anything: the fragment builders below escape every piece of
untrusted text (file names, decoder and pipeline messages) before it is
interpolated.
"""
from html import escape
from typing import List, Optional, Sequence

UPLOAD_ACTION = "/admin/upload"
PAGE_TITLE = "Excel Admin Upload"
PREVIEW_ROW_LIMIT = 5

_PAGE_SHELL = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{title}</title>
  <style>
    :root {{
      color-scheme: light dark;
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
    }}
    body {{
      margin: 0;
      padding: 2rem;
      background: #0f172a;
      color: #e2e8f0;
      min-height: 100vh;
      display: flex;
      align-items: center;
      justify-content: center;
    }}
    .card {{
      width: 100%;
      max-width: 720px;
      background: #1e293b;
      padding: 2rem;
      border-radius: 1rem;
      box-shadow: 0 20px 60px rgba(15, 23, 42, 0.5);
      border: 1px solid rgba(226, 232, 240, 0.08);
    }}
    h1 {{
      margin: 0 0 1rem;
      font-size: 1.75rem;
      color: #f1f5f9;
    }}
    p {{
      margin: 0 0 1.5rem;
      color: #cbd5f5;
    }}
    form {{
      display: flex;
      flex-direction: column;
      gap: 1rem;
    }}
    input[type="file"] {{
      padding: 0.9rem;
      border-radius: 0.75rem;
      border: 1px dashed rgba(226, 232, 240, 0.3);
      background: rgba(15, 23, 42, 0.4);
      color: inherit;
    }}
    button {{
      background: #6366f1;
      color: white;
      padding: 0.85rem 1.5rem;
      border: none;
      border-radius: 0.75rem;
      font-size: 1rem;
      cursor: pointer;
      transition: background 0.2s ease;
    }}
    button:hover {{
      background: #4f46e5;
    }}
    .status {{
      margin-top: 1.5rem;
      padding: 1rem;
      border-radius: 0.75rem;
      background: rgba(15, 23, 42, 0.5);
      border: 1px solid rgba(226, 232, 240, 0.08);
    }}
    .status.success {{
      border-color: rgba(34, 197, 94, 0.5);
      color: #4ade80;
    }}
    .status.error {{
      border-color: rgba(248, 113, 113, 0.5);
      color: #f87171;
    }}
    pre {{
      overflow-x: auto;
      padding: 1rem;
      background: rgba(15, 23, 42, 0.6);
      border-radius: 0.75rem;
    }}
  </style>
</head>
<body>
  <main class="card">
    {content}
  </main>
</body>
</html>"""

_HEADING = "<h1>Excel Upload (Admin)</h1>"


def render_page(fragment: str) -> str:
    """
    Wrap an HTML fragment in the admin page shell.

    Args:
        fragment: Trusted HTML placed inside the card; callers must escape untrusted text

    Returns:
        str: Complete HTML document
    """
    return _PAGE_SHELL.format(title=PAGE_TITLE, content=fragment)


def upload_form(submit_label: str = "Upload &amp; Process", spaced: bool = False) -> str:
    """Upload form posting back to the admin endpoint in HTML mode."""
    style = ' style="margin-top:1.5rem;"' if spaced else ""
    return f"""<form action="{UPLOAD_ACTION}" method="POST" enctype="multipart/form-data"{style}>
      <input type="hidden" name="responseType" value="html" />
      <label>
        <strong>Select Excel file</strong>
        <input type="file" name="file" accept=".xlsx,.xls" required />
      </label>
      <button type="submit">{submit_label}</button>
    </form>"""


def upload_page_fragment(status_html: str = "") -> str:
    """Content of the GET page, optionally preceded by a status block."""
    return f"""{_HEADING}
    <p>Upload XLSX/XLS file directly from server. This form hits the same backend pipeline used by Postman.</p>
    {status_html}
    {upload_form()}"""


def error_fragment(message: str, kind: Optional[str] = None) -> str:
    """Failure status block followed by the form again so the upload can be retried."""
    kind_attr = f' data-kind="{escape(kind)}"' if kind else ""
    return f"""{_HEADING}
    <div class="status error"{kind_attr}>
      <strong>Upload failed</strong><br />
      {escape(message)}
    </div>
    {upload_form("Try Again", spaced=True)}"""


def success_fragment(
    file_name: Optional[str],
    total_rows: int,
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    sheet_name: Optional[str] = None,
    note: Optional[str] = None
) -> str:
    """
    Success status block summarising what the pipeline ingested.

    Shows the file name, sheet and row count, a short preview of the parsed
    table and a form for the next upload.
    """
    details: List[str] = [f"File: {escape(file_name or 'unnamed')}"]
    if sheet_name:
        details.append(f"Sheet: {escape(sheet_name)}")
    details.append(f"Rows processed: {total_rows}")
    if note:
        details.append(escape(note))

    preview_lines = [" | ".join(str(h) for h in headers)] if headers else []
    for row in rows[:PREVIEW_ROW_LIMIT]:
        preview_lines.append(" | ".join(str(cell) for cell in row))
    preview = ""
    if preview_lines:
        preview_text = "\n".join(preview_lines)
        preview = f"<pre>{escape(preview_text)}</pre>"

    return f"""{_HEADING}
    <div class="status success">
      <strong>Upload complete</strong><br />
      {'<br />'.join(details)}
    </div>
    {preview}
    {upload_form("Upload Another", spaced=True)}"""
