"""
templates.py — Inquiry Validation and Rendering
================================================
Defines the contact-form Submission, which of its fields are required, and
renders it to the subject / plain-text / HTML triple the transport sends.

render() is deterministic for a given `received_at`; the only time-dependent
part of the output is the footer that states when the inquiry arrived.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from markupsafe import Markup, escape

REQUIRED_FIELDS = ("name", "email", "goal", "date", "budget")
OPTIONAL_FIELDS = ("company", "details")


@dataclass(frozen=True)
class Submission:
    name:    str
    email:   str
    goal:    str
    date:    str
    budget:  str
    company: str | None = None
    details: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Submission":
        """Build from a mapping that already passed missing_fields()."""
        values = {name: _text(payload.get(name)) for name in REQUIRED_FIELDS}
        for name in OPTIONAL_FIELDS:
            values[name] = _text(payload.get(name)) or None
        return cls(**values)


@dataclass
class RenderedEmail:
    subject:   str
    body_text: str
    body_html: str


# ── Validation ────────────────────────────────────────────────────────────────

def _text(value: Any) -> str:
    # JSON true/false is never a usable field value
    if value is None or isinstance(value, (bool, dict, list)):
        return ""
    return str(value).strip()


def missing_fields(payload: Any) -> list[str]:
    """Required fields absent or blank, in REQUIRED_FIELDS order. Empty list = valid."""
    if not isinstance(payload, Mapping):
        return list(REQUIRED_FIELDS)
    return [name for name in REQUIRED_FIELDS if not _text(payload.get(name))]


# ── Formatting ────────────────────────────────────────────────────────────────

def format_long_date(value: str) -> str:
    """'2024-05-01' -> 'May 1, 2024'. Anything that isn't ISO 8601 is returned as given."""
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return value
    return f"{parsed:%B} {parsed.day}, {parsed.year}"


def format_received_at(moment: datetime) -> str:
    """'Wednesday, May 1, 2024 at 03:04 PM'"""
    return f"{moment:%A}, {moment:%B} {moment.day}, {moment.year} at {moment:%I:%M %p}"


# ── HTML base template ────────────────────────────────────────────────────────

def _html_wrap(title: str, body_inner: str, footer: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
</head>
<body style="margin:0;padding:0;background:#f8f9fa;font-family:Arial,sans-serif;line-height:1.6;">
  <table width="100%" cellpadding="0" cellspacing="0" style="background:#f8f9fa;padding:20px 0;">
    <tr><td align="center">
      <table width="600" cellpadding="0" cellspacing="0" style="background:#ffffff;border-radius:10px;">
        <!-- Header -->
        <tr>
          <td style="background:linear-gradient(135deg,#1a1a1a 0%,#333333 100%);color:#ffffff;
                     padding:40px 20px;text-align:center;border-radius:10px 10px 0 0;">
            <div style="font-size:24px;font-weight:bold;margin-bottom:10px;">New Project Inquiry</div>
            <div style="font-size:16px;opacity:0.9;">A potential client has submitted a project request</div>
          </td>
        </tr>
        <!-- Body -->
        <tr>
          <td style="padding:30px;">
            {body_inner}
          </td>
        </tr>
        <!-- Footer -->
        <tr>
          <td style="padding:0 30px 30px;text-align:center;font-size:14px;color:#666666;">
            <p>{footer}</p>
          </td>
        </tr>
      </table>
    </td></tr>
  </table>
</body>
</html>"""


def _section(title: str, items: list[str]) -> str:
    return f"""
            <div style="margin-bottom:25px;padding-bottom:20px;border-bottom:1px solid #eeeeee;">
              <div style="font-size:18px;color:#1a1a1a;font-weight:bold;margin-bottom:15px;">{title}</div>
              {''.join(items)}
            </div>"""


def _item(label: str | None, value: Markup) -> str:
    label_html = (
        f'<div style="font-size:14px;color:#666666;margin-bottom:5px;">{label}</div>'
        if label else ""
    )
    return f"""
              <div style="background:#f8f9fa;padding:15px;border-radius:8px;margin-bottom:15px;">
                {label_html}
                <div style="font-size:16px;color:#333333;font-weight:500;">{value}</div>
              </div>"""


def _budget_tag(budget: str) -> Markup:
    return Markup(
        '<span style="display:inline-block;padding:6px 12px;background:#e3f2fd;color:#1976d2;'
        'border-radius:20px;font-size:14px;font-weight:500;">{}</span>'
    ).format(budget)


# ── Renderer ──────────────────────────────────────────────────────────────────

def render(submission: Submission, subject: str, received_at: datetime) -> RenderedEmail:
    s = submission
    completion = format_long_date(s.date)
    received = format_received_at(received_at)

    client = [_item("Name", escape(s.name))]
    if s.company:
        client.append(_item("Company", escape(s.company)))
    client.append(_item("Email", escape(s.email)))

    project = [
        _item("Project Goal", escape(s.goal)),
        _item("Desired Completion", escape(completion)),
        _item("Budget Range", _budget_tag(s.budget)),
    ]

    sections = [
        _section("Client Information", client),
        _section("Project Details", project),
    ]
    if s.details:
        sections.append(_section(
            "Additional Information",
            [_item(None, Markup("<br>\n").join(s.details.splitlines()))],
        ))

    html = _html_wrap(
        escape(subject),
        "".join(sections),
        f"This inquiry was received on {received}",
    )

    text_lines = [
        "New Project Inquiry",
        "===================",
        "",
        "Client Information",
        f"  Name         : {s.name}",
    ]
    if s.company:
        text_lines.append(f"  Company      : {s.company}")
    text_lines += [
        f"  Email        : {s.email}",
        "",
        "Project Details",
        f"  Project Goal : {s.goal}",
        f"  Completion   : {completion}",
        f"  Budget Range : {s.budget}",
    ]
    if s.details:
        text_lines += ["", "Additional Information", s.details]
    text_lines += ["", f"This inquiry was received on {received}"]

    return RenderedEmail(subject=subject, body_text="\n".join(text_lines), body_html=html)
