import json

import pytest

from dbchat.validate import (
    EXTRACTORS,
    REJECTION_MESSAGE,
    extract_and_validate,
    extract_sql,
    from_any_fence,
    from_json,
    from_json_fence,
    from_sql_fence,
    rejection_reason,
    statement_warnings,
)


def test_sql_field_in_json():
    assert extract_and_validate('{"SQL":"select 1"}').sql == "select 1"


def test_sql_fence():
    assert extract_and_validate("```sql\nselect 1\n```").sql == "select 1"


def test_free_text_has_no_sql():
    assert extract_and_validate("There are 42 users in the database.") is None
    assert extract_and_validate("") is None


def test_extraction_order_is_json_then_fences():
    assert EXTRACTORS == (from_json, from_json_fence, from_sql_fence, from_any_fence)


def test_full_model_answer_uses_sql_field():
    text = (
        '{"Summary": "Counts users", "SQL": "select count(*) as total from public.users",'
        ' "Explanation": "", "Data": "", "ChartType": ""}'
    )
    assert extract_sql(text) == "select count(*) as total from public.users"


def test_empty_sql_field_means_no_sql():
    assert extract_sql('{"Summary": "I cannot answer that from this schema.", "SQL": ""}') is None


def test_json_inside_json_fence():
    text = 'Here you go:\n```json\n{"SQL": "select name from public.users"}\n```'
    assert extract_sql(text) == "select name from public.users"


def test_sql_fence_preferred_over_plain_fence():
    text = "```\nnot this\n```\nand\n```SQL\nselect 2\n```"
    assert extract_sql(text) == "select 2"


def test_plain_fence_fallback():
    assert extract_sql("Try this:\n```\nselect 3\n```") == "select 3"


def test_json_that_is_not_an_object_falls_through():
    assert from_json("[1, 2]") is None
    assert from_json("42") is None


@pytest.mark.parametrize("keyword", ["create", "insert", "update", "delete", "drop", "alter"])
@pytest.mark.parametrize("style", [str.lower, str.upper, str.title])
@pytest.mark.parametrize("prefix", ["", "   ", "\n\t "])
def test_mutating_statements_are_rejected(keyword, style, prefix):
    """Rejected regardless of case or leading whitespace"""
    sql = prefix + style(keyword) + " something"
    guarded = extract_and_validate(json.dumps({"SQL": sql}))

    assert rejection_reason(sql) == REJECTION_MESSAGE
    assert guarded is not None
    assert not guarded.allowed
    assert guarded.rejection == REJECTION_MESSAGE


@pytest.mark.parametrize(
    "sql", ["select 1", "SELECT * FROM public.users", "  with t as (select 1) select * from t"]
)
def test_reads_are_allowed(sql):
    assert rejection_reason(sql) is None


def test_multiple_statements_warn_but_pass():
    guarded = extract_and_validate("```sql\nselect 1; delete from users\n```")

    assert guarded.allowed
    assert any("2 statements" in w for w in guarded.warnings)


def test_leading_comment_warns():
    warnings = statement_warnings("-- harmless\nselect 1")
    assert any("comment" in w for w in warnings)


def test_plain_select_has_no_warnings():
    assert statement_warnings("select count(*) from public.users") == []
