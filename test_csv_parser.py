import pytest

from csv_parser import normalize_header, parse_text
from errors import FormatError
from exports import sample_csv


def test_headers_are_normalized():
    table = parse_text("Student ID,Student Name,Test-Name,Test Date,Overall Score,Number Theory\n"
                       "S1,Ann,Quiz,2024-01-01,90,80")
    assert table.headers == [
        "student_id", "student_name", "test_name", "test_date", "overall_score", "number_theory",
    ]
    assert table.rows == [{
        "student_id": "S1",
        "student_name": "Ann",
        "test_name": "Quiz",
        "test_date": "2024-01-01",
        "overall_score": "90",
        "number_theory": "80",
    }]


def test_header_aliases_map_to_standard_columns():
    assert normalize_header("Name") == "student_name"
    assert normalize_header("ID") == "student_id"
    assert normalize_header("Score") == "overall_score"
    assert normalize_header(" Date ") == "test_date"
    assert normalize_header("Algebra") == "algebra"


def test_quoted_fields_keep_delimiters_and_escaped_quotes():
    text = ('student_id,student_name,test_name\n'
            'S1,"Smith, Jane","The ""Big"" Test"\n')
    table = parse_text(text)
    assert table.rows[0]["student_name"] == "Smith, Jane"
    assert table.rows[0]["test_name"] == 'The "Big" Test'


def test_blank_lines_are_skipped():
    text = "student_id,student_name\n\nS1,Ann\n   \nS2,Bob\n\n"
    table = parse_text(text)
    assert [row["student_id"] for row in table.rows] == ["S1", "S2"]


def test_short_rows_are_padded_and_long_rows_truncated():
    table = parse_text("a,b,c\n1,2\n1,2,3,4")
    assert table.rows[0] == {"a": "1", "b": "2", "c": ""}
    assert table.rows[1] == {"a": "1", "b": "2", "c": "3"}


def test_other_delimiters():
    table = parse_text("student_id;overall_score\nS1;88.5", delimiter=";")
    assert table.rows == [{"student_id": "S1", "overall_score": "88.5"}]


def test_header_only_input_is_a_format_error():
    with pytest.raises(FormatError):
        parse_text("student_id,student_name,test_name,test_date,overall_score\n")


def test_empty_input_is_a_format_error():
    with pytest.raises(FormatError):
        parse_text("   \n\n")


def test_unclosed_quote_is_a_format_error():
    text = ("student_id,student_name,test_name,test_date,overall_score\n"
            "S1,Ann Lee,Fall,2024-01-01,70\n"
            "S2,\"Ben,Fall,2024-01-01,80\n"
            "S3,Cy,Fall,2024-01-01,75\n"
            "S4,\"Park, Dee\",Fall,2024-01-01,60\n")
    with pytest.raises(FormatError):
        parse_text(text)


def test_sample_template_parses():
    table = parse_text(sample_csv())
    assert len(table.rows) == 4
    assert table.headers[:6] == [
        "student_id", "student_name", "grade", "test_name", "test_date", "overall_score",
    ]
    assert "number_theory" in table.headers
