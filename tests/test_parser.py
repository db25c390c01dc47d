from datetime import date
from decimal import Decimal

from quick_ledger.entries import Bill, Expense, ParseError, Payment, Sale
from quick_ledger.parser import parse, parse_date_text, parse_line

CONTEXT = date(2024, 3, 15)


def fixed_id() -> str:
    return "entry-1"


def test_net_sale_is_digital():
    entry = parse_line("7. 21506 net", CONTEXT)

    assert isinstance(entry, Sale)
    assert entry.amount == Decimal("21506")
    assert entry.payment_mode == "digital"
    assert entry.date == CONTEXT
    assert entry.party_name is None


def test_parenthesized_party_makes_credit_sale():
    entry = parse_line("20. 9300 (Maa)", CONTEXT)

    assert isinstance(entry, Sale)
    assert entry.amount == Decimal("9300")
    assert entry.payment_mode == "credit"
    assert entry.party_name == "Maa"
    assert entry.party_error is None


def test_plain_sale_is_cash():
    entry = parse_line("5. 2000", CONTEXT)

    assert isinstance(entry, Sale)
    assert entry.payment_mode == "cash"
    assert entry.party_name is None


def test_sale_date_in_parentheses_overrides_context_date():
    entry = parse_line("5. 2000 (13/12/24)", CONTEXT)

    assert isinstance(entry, Sale)
    assert entry.payment_mode == "cash"
    assert entry.date == date(2024, 12, 13)


def test_party_name_with_forbidden_characters_is_flagged_not_rejected():
    entry = parse_line("3. 150 (Bad#Name)", CONTEXT)

    assert isinstance(entry, Sale)
    assert entry.payment_mode == "credit"
    assert entry.party_name == "Bad#Name"
    assert entry.party_error is not None


def test_bill_with_date_keyword():
    entry = parse_line("SAJ (date: 13/12/24) 33201", CONTEXT)

    assert isinstance(entry, Bill)
    assert entry.party_name == "SAJ"
    assert entry.date == date(2024, 12, 13)
    assert entry.amount == Decimal("33201")
    assert entry.has_gst is False
    assert entry.bill_number is None
    assert entry.gr_amount is None


def test_bill_with_number_gr_and_gst():
    entry = parse_line("SAJ (13/12/24) A123 33201 GR 500 GST", CONTEXT)

    assert isinstance(entry, Bill)
    assert entry.bill_number == "A123"
    assert entry.amount == Decimal("33201")
    assert entry.gr_amount == Decimal("500")
    assert entry.has_gst is True


def test_bill_amount_is_largest_number_and_numeric_bill_number_kept():
    entry = parse_line("Shree Traders (1/2/2024) 1045 33201", CONTEXT)

    assert isinstance(entry, Bill)
    assert entry.party_name == "Shree Traders"
    assert entry.date == date(2024, 2, 1)
    assert entry.amount == Decimal("33201")
    assert entry.bill_number == "1045"


def test_goods_purchase_expense_with_gst():
    entry = parse_line("GP 94100 GST", CONTEXT)

    assert isinstance(entry, Expense)
    assert entry.category == "goods_purchase"
    assert entry.amount == Decimal("94100")
    assert entry.has_gst is True
    assert entry.date == CONTEXT


def test_expense_with_trailing_date_is_not_a_bill():
    entry = parse_line("Rent 5000 (01/03/24)", CONTEXT)

    assert isinstance(entry, Expense)
    assert entry.category == "rent"
    assert entry.date == date(2024, 3, 1)


def test_unmapped_label_defaults_to_petty_and_keeps_label():
    entry = parse_line("Tea snacks 120", CONTEXT)

    assert isinstance(entry, Expense)
    assert entry.category == "petty"
    assert entry.description == "Tea snacks"


def test_amount_accepts_thousands_separators():
    entry = parse_line("Home 1,25,000.50", CONTEXT)

    assert isinstance(entry, Expense)
    assert entry.category == "home"
    assert entry.amount == Decimal("125000.50")


def test_staff_salary_and_advance():
    salary = parse_line("Ravi Sal 12000", CONTEXT)
    advance = parse_line("ravi ADV 2000", CONTEXT)

    assert isinstance(salary, Expense)
    assert salary.category == "salary"
    assert salary.staff_name == "Ravi"
    assert salary.amount == Decimal("12000")

    assert isinstance(advance, Expense)
    assert advance.category == "advance"
    assert advance.staff_name == "ravi"


def test_party_keyword_makes_payment():
    entry = parse_line("PBK 20000 Party GST", CONTEXT)

    assert isinstance(entry, Payment)
    assert entry.party_name == "PBK"
    assert entry.amount == Decimal("20000")
    assert entry.has_gst is True


def test_known_party_label_makes_payment():
    as_payment = parse_line("Maa 5000", CONTEXT, known_parties=["MAA"])
    as_expense = parse_line("Maa 5000", CONTEXT)

    assert isinstance(as_payment, Payment)
    assert as_payment.party_name == "Maa"
    assert isinstance(as_expense, Expense)
    assert as_expense.category == "petty"


def test_category_label_wins_over_known_party():
    entry = parse_line("Rent 5000", CONTEXT, known_parties=["rent"])

    assert isinstance(entry, Expense)
    assert entry.category == "rent"


def test_unrecognized_lines_are_parse_errors_keeping_text():
    no_amount = parse_line("hello world", CONTEXT, line_number=4)
    bad_sale = parse_line("7. abc", CONTEXT)
    no_label = parse_line("500 home", CONTEXT)

    assert isinstance(no_amount, ParseError)
    assert no_amount.line_number == 4
    assert no_amount.line == "hello world"
    assert isinstance(bad_sale, ParseError)
    assert isinstance(no_label, ParseError)


def test_invalid_calendar_date_is_parse_error():
    entry = parse_line("SAJ (31/02/24) 500", CONTEXT)

    assert isinstance(entry, ParseError)
    assert "Invalid date" in entry.reason


def test_parse_skips_blank_lines_and_keeps_physical_line_numbers():
    results = parse("7. 100 net\n\nnonsense\nGP 50\n", CONTEXT)

    assert len(results) == 3
    assert [r.line_number for r in results] == [1, 3, 4]
    assert isinstance(results[0], Sale)
    assert isinstance(results[1], ParseError)
    assert isinstance(results[2], Expense)


def test_parse_is_deterministic_for_same_input():
    first = parse_line("SAJ (13/12/24) A1 900 GST", CONTEXT, id_factory=fixed_id)
    second = parse_line("SAJ (13/12/24) A1 900 GST", CONTEXT, id_factory=fixed_id)

    assert first == second


def test_parse_date_text_accepts_iso_and_day_first():
    assert parse_date_text("2024-12-13") == date(2024, 12, 13)
    assert parse_date_text("13/12/24") == date(2024, 12, 13)
    assert parse_date_text("13/12/2024") == date(2024, 12, 13)


def test_oversized_amounts_are_parse_errors():
    huge_sale = parse_line("1. " + "9" * 30, CONTEXT)
    beyond_store = parse_line("1. 1" + "0" * 20, CONTEXT)
    huge_bill = parse_line("SAJ (13/12/24) A1 " + "9" * 30, CONTEXT)

    assert isinstance(huge_sale, ParseError)
    assert isinstance(beyond_store, ParseError)
    assert isinstance(huge_bill, ParseError)
    assert len(parse("1. " + "9" * 30 + "\n7. 100\n", CONTEXT)) == 2


def test_glued_gr_token_is_goods_return_not_bill_number():
    entry = parse_line("SAJ (13/12/24) 33201 GR500", CONTEXT)

    assert isinstance(entry, Bill)
    assert entry.gr_amount == Decimal("500")
    assert entry.bill_number is None
    assert entry.amount == Decimal("33201")
