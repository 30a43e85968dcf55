"""Template variables and rendering for scheduled messages.

E-mail templates are tenant-authored HTML with ``{{variable}}`` placeholders
and are rendered in a sandboxed Jinja2 environment. WhatsApp rule messages use
the short ``{customerName}`` / ``{amount}`` / ``{invoiceNumber}`` form.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from jinja2 import Undefined
from jinja2.sandbox import SandboxedEnvironment

from .due_dates import to_local_date
from .dto import CandidateRecord, CompanyProfile, EmailTemplate

_ONES = ["", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine"]
_TEENS = [
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen",
    "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
]
_TENS = ["", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety"]

_env = SandboxedEnvironment(autoescape=False, undefined=Undefined, keep_trailing_newline=True)


def number_to_words(num: int) -> str:
    """Spell out a non-negative integer in the Indian numbering system."""
    if num == 0:
        return "Zero"
    if num < 10:
        return _ONES[num]
    if num < 20:
        return _TEENS[num - 10]
    if num < 100:
        return _TENS[num // 10] + (" " + _ONES[num % 10] if num % 10 else "")
    if num < 1000:
        rest = num % 100
        return _ONES[num // 100] + " Hundred" + (" " + number_to_words(rest) if rest else "")
    if num < 100000:
        rest = num % 1000
        return number_to_words(num // 1000) + " Thousand" + (" " + number_to_words(rest) if rest else "")
    rest = num % 100000
    return number_to_words(num // 100000) + " Lakh" + (" " + number_to_words(rest) if rest else "")


def format_currency(amount: Decimal | float | str | None) -> str:
    """Format an amount as INR with Indian digit grouping (₹1,23,456.78)."""
    try:
        value = Decimal(str(amount if amount is not None else 0)).quantize(Decimal("0.01"))
    except InvalidOperation:
        value = Decimal("0.00")
    sign = "-" if value < 0 else ""
    whole, frac = f"{abs(value):.2f}".split(".")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    return f"{sign}₹{whole}.{frac}"


def format_date(value: date | datetime | None) -> str:
    if value is None:
        return ""
    return to_local_date(value).strftime("%d %b %Y")


def company_variables(profile: CompanyProfile | None) -> dict[str, str]:
    if profile is None:
        return {
            "companyName": "",
            "companyLogo": "",
            "companyAddress": "",
            "companyPhone": "",
            "companyEmail": "",
            "companyWebsite": "",
            "companyGST": "",
        }
    return {
        "companyName": profile.legal_name or profile.brand_name or "",
        "companyLogo": profile.logo or "",
        "companyAddress": ", ".join(line for line in profile.address_lines if line),
        "companyPhone": profile.phone or "",
        "companyEmail": profile.email or "",
        "companyWebsite": profile.website or "",
        "companyGST": profile.gstin or "",
    }


def record_variables(
    record: CandidateRecord, today: date | datetime, base_url: str = ""
) -> dict[str, str]:
    """Invoice-level variables available to e-mail templates."""
    days_overdue = 0
    if record.due_date is not None:
        days_overdue = max(0, (to_local_date(today) - record.due_date).days)

    try:
        whole_amount = int(Decimal(str(record.amount or 0)))
    except InvalidOperation:
        whole_amount = 0

    return {
        "customerName": record.customer_name or "",
        "customerEmail": record.email or "",
        "customerPhone": record.phone or "",
        "invoiceNumber": record.document_number or "",
        "invoiceDate": format_date(record.reference_date),
        "dueDate": format_date(record.due_date),
        "totalAmount": format_currency(record.amount),
        "amountInWords": f"INR {number_to_words(abs(whole_amount))} Only",
        "daysOverdue": str(days_overdue),
        "category": record.category or "",
        "paymentLink": f"{base_url.rstrip('/')}/invoices/{record.record_id}/pay" if base_url else "#",
    }


def render_email(template: EmailTemplate, variables: dict[str, str]) -> tuple[str, str]:
    """Render (subject, body). Unknown placeholders render empty."""
    subject = _env.from_string(template.subject or "").render(**variables)
    body = _env.from_string(template.body or "").render(**variables)
    return subject, body


def render_whatsapp_message(message: str, record: CandidateRecord) -> str:
    amount = str(record.amount) if record.amount is not None else "0"
    return (
        message.replace("{customerName}", record.customer_name or "")
        .replace("{amount}", amount)
        .replace("{invoiceNumber}", record.document_number or "")
    )
