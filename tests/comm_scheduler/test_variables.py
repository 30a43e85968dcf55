"""Tests for template variables and rendering."""

from datetime import date
from decimal import Decimal

import pytest

from agents.comm_scheduler.dto import CompanyProfile, EmailTemplate
from agents.comm_scheduler.variables import (
    company_variables,
    format_currency,
    format_date,
    number_to_words,
    record_variables,
    render_email,
    render_whatsapp_message,
)
from tests.comm_scheduler.factories import make_record


@pytest.mark.parametrize(
    "num, words",
    [
        (0, "Zero"),
        (7, "Seven"),
        (15, "Fifteen"),
        (40, "Forty"),
        (99, "Ninety Nine"),
        (100, "One Hundred"),
        (1005, "One Thousand Five"),
        (123456, "One Lakh Twenty Three Thousand Four Hundred Fifty Six"),
    ],
)
def test_number_to_words(num, words):
    assert number_to_words(num) == words


@pytest.mark.parametrize(
    "amount, text",
    [
        (Decimal("999"), "₹999.00"),
        (Decimal("1234567.5"), "₹12,34,567.50"),
        (Decimal("123456.78"), "₹1,23,456.78"),
        (None, "₹0.00"),
        ("not-a-number", "₹0.00"),
    ],
)
def test_format_currency(amount, text):
    assert format_currency(amount) == text


def test_record_variables():
    record = make_record(due_date=date(2025, 3, 8))
    variables = record_variables(record, date(2025, 3, 15), "https://pay.example/")

    assert variables["invoiceNumber"] == "INV-1"
    assert variables["invoiceDate"] == "06 Feb 2025"
    assert variables["dueDate"] == "08 Mar 2025"
    assert variables["daysOverdue"] == "7"
    assert variables["amountInWords"] == "INR One Lakh Twenty Three Thousand Four Hundred Fifty Six Only"
    assert variables["paymentLink"] == "https://pay.example/invoices/inv-1/pay"


def test_record_variables_before_due_and_without_link():
    record = make_record(due_date=date(2025, 3, 20))
    variables = record_variables(record, date(2025, 3, 15))
    assert variables["daysOverdue"] == "0"
    assert variables["paymentLink"] == "#"


def test_company_variables():
    profile = CompanyProfile(
        tenant_id="t1",
        brand_name="Alpha",
        address_lines=["12 MG Road", "", "Bengaluru"],
        gstin="29ABCDE1234F1Z5",
    )
    variables = company_variables(profile)
    assert variables["companyName"] == "Alpha"
    assert variables["companyAddress"] == "12 MG Road, Bengaluru"
    assert variables["companyGST"] == "29ABCDE1234F1Z5"
    assert set(company_variables(None).values()) == {""}


def test_render_email_leaves_unknown_placeholders_empty():
    template = EmailTemplate(
        id="tpl", tenant_id="t1", subject="Reminder {{invoiceNumber}}{{unknown}}", body="<b>{{customerName}}</b>"
    )
    subject, body = render_email(template, {"invoiceNumber": "INV-9", "customerName": "Asha"})
    assert subject == "Reminder INV-9"
    assert body == "<b>Asha</b>"


def test_render_whatsapp_message():
    record = make_record(amount=Decimal("8500.00"), customer_name=None)
    text = render_whatsapp_message("Dear {customerName}: {invoiceNumber} / {amount} / {amount}", record)
    assert text == "Dear : INV-1 / 8500.00 / 8500.00"


def test_format_date_empty():
    assert format_date(None) == ""
