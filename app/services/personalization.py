# app/services/personalization.py
"""
Per-recipient personalization and email content shaping.

Placeholders use the ``{{token}}`` form. The placeholder map is built once
per recipient and applied to subject and body in a single pass; tokens
with no value are left as written.
"""
import re
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Dict, Optional

from app.services.recipient_source import RecipientRecord

PLACEHOLDER_RE = re.compile(r"\{\{([^{}]+)\}\}")
NAME_FALLBACK = "there"

ANCHOR_RE = re.compile(r"<a\s+([^>]*?)href=[\"']([^\"']+)[\"']([^>]*?)>", re.IGNORECASE)
IMAGE_RE = re.compile(r"<img\s+([^>]*?)src=[\"']([^\"']+)[\"']([^>]*?)>", re.IGNORECASE)
STYLE_ATTR_RE = re.compile(r"style=[\"']([^\"']*?)[\"']", re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]*>")
WHITESPACE_RE = re.compile(r"\s+")

LINK_STYLE = "color: #3b82f6; text-decoration: underline;"
IMAGE_STYLE = "display: block; max-width: 100%; height: auto; border: 0;"

EMAIL_SHELL = """<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Transitional//EN" "http://www.w3.org/TR/xhtml1/DTD/xhtml1-transitional.dtd">
<html xmlns="http://www.w3.org/1999/xhtml">
<head>
<meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
<meta name="viewport" content="width=device-width, initial-scale=1.0" />
<title>Email</title>
<!--[if mso]>
<noscript>
<xml>
<o:OfficeDocumentSettings>
<o:PixelsPerInch>96</o:PixelsPerInch>
</o:OfficeDocumentSettings>
</xml>
</noscript>
<![endif]-->
</head>
<body style="margin: 0; padding: 0; background-color: #f4f4f4;">
<div style="font-family: Arial, 'Helvetica Neue', Helvetica, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; background-color: #ffffff;">
{content}
</div>
</body>
</html>"""


# ────────────────────────────────────────────
# Placeholders
# ────────────────────────────────────────────

def build_placeholders(recipient: RecipientRecord) -> Dict[str, str]:
    """
    Build the placeholder map for one recipient.

    Built-ins ``name``/``Name`` and ``email``/``Email`` come first. Every
    sheet column is then exposed by its lowercased and original header
    text; a non-empty "name"/"email" column also overrides the built-ins.
    """
    display_name = recipient.name or NAME_FALLBACK
    values = {
        "name": display_name,
        "Name": display_name,
        "email": recipient.email,
        "Email": recipient.email,
    }

    row = recipient.row_values or []
    for index, header in enumerate(recipient.header_row or []):
        if not header or not str(header).strip():
            continue
        display = str(header).strip()
        lowered = display.lower()
        value = row[index] if index < len(row) and row[index] is not None else ""
        value = str(value)

        # An empty name/email cell keeps the built-in value
        values[lowered] = value or values.get(lowered, "")
        values[display] = value or values.get(display, "")

        if value:
            if "name" in lowered:
                values["name"] = value
                values["Name"] = value
            if "email" in lowered:
                values["email"] = value
                values["Email"] = value

    return values


def render(template: str, placeholders: Dict[str, str]) -> str:
    """Replace every known ``{{token}}``; unknown tokens stay verbatim"""
    if not template:
        return template or ""
    return PLACEHOLDER_RE.sub(
        lambda match: placeholders.get(match.group(1), match.group(0)),
        template
    )


# ────────────────────────────────────────────
# Content shaping
# ────────────────────────────────────────────

def is_html(body: str) -> bool:
    return bool(body) and "<" in body and ">" in body


def _annotate_anchor(match: "re.Match") -> str:
    before, url, after = match.group(1), match.group(2), match.group(3)
    existing = before + after
    attributes = f'{before}href="{url}"{after}'
    if not re.search(r"target\s*=", existing, re.IGNORECASE):
        attributes += ' target="_blank"'
    if not re.search(r"rel\s*=", existing, re.IGNORECASE):
        attributes += ' rel="noopener"'
    if "style=" not in attributes.lower():
        attributes += f' style="{LINK_STYLE}"'
    return f"<a {attributes}>"


def _enhance_image_style(match: "re.Match") -> str:
    style = match.group(1)
    if "display" not in style:
        style += "; display: block"
    if "border" not in style:
        style += "; border: 0"
    if "max-width" not in style:
        style += "; max-width: 100%"
    return f'style="{style}"'


def _annotate_image(match: "re.Match") -> str:
    before, src, after = match.group(1), match.group(2), match.group(3)
    attributes = f'{before}src="{src}"{after}'
    if "alt=" not in attributes.lower():
        attributes += ' alt="Image"'
    if STYLE_ATTR_RE.search(attributes):
        attributes = STYLE_ATTR_RE.sub(_enhance_image_style, attributes)
    else:
        attributes += f' style="{IMAGE_STYLE}"'
    return f"<img {attributes}>"


def shape_html(body: str) -> str:
    """
    Prepare rich content for mail clients: annotate links and images and
    wrap the content in a minimal standalone document.
    """
    if not is_html(body):
        return body
    shaped = ANCHOR_RE.sub(_annotate_anchor, body)
    shaped = IMAGE_RE.sub(_annotate_image, shaped)
    return EMAIL_SHELL.format(content=shaped)


def html_to_text(html: str) -> str:
    """Plain-text alternative: strip tags and collapse whitespace"""
    return WHITESPACE_RE.sub(" ", TAG_RE.sub("", html or "")).strip()


# ────────────────────────────────────────────
# Message composition
# ────────────────────────────────────────────

@dataclass
class OutgoingMessage:
    """A fully personalized message ready for a sender strategy"""
    sender: str
    to: str
    subject: str
    text: str
    html: Optional[str] = None

    def to_mime(self) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["From"] = self.sender
        mime["To"] = self.to
        mime["Subject"] = self.subject
        mime["Date"] = formatdate(localtime=True)
        mime["Message-ID"] = make_msgid()
        mime.attach(MIMEText(self.text, "plain", "utf-8"))
        if self.html is not None:
            mime.attach(MIMEText(self.html, "html", "utf-8"))
        return mime


def compose_message(
    sender: str,
    recipient: RecipientRecord,
    subject_template: str,
    body_template: str
) -> OutgoingMessage:
    """Personalize templates for one recipient and shape the body"""
    placeholders = build_placeholders(recipient)
    subject = render(subject_template, placeholders)
    body = render(body_template, placeholders)

    if is_html(body):
        html = shape_html(body)
        text = html_to_text(body)
    else:
        # Plain body goes out as-is in both parts
        html = body
        text = body

    return OutgoingMessage(sender=sender, to=recipient.email, subject=subject, text=text, html=html)
