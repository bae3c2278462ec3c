import pytest

from examprep.dialect import (
    POSTGRES_IDIOMS,
    count_placeholders,
    normalize_sql_for_postgres,
    renumber_placeholders,
    substitute_idioms,
)


@pytest.mark.parametrize(
    'source, expected',
    [
        ("SELECT datetime('now')", 'SELECT NOW()'),
        ("SELECT DATETIME( 'now' )", 'SELECT NOW()'),
        (
            "WHERE created_at >= datetime('now', '-7 days')",
            "WHERE created_at >= NOW() - INTERVAL '7 days'",
        ),
        (
            "WHERE created_at >= datetime('now','-30 days')",
            "WHERE created_at >= NOW() - INTERVAL '30 days'",
        ),
        ("WHERE date(start_date) >= date('now')", 'WHERE date(start_date) >= CURRENT_DATE'),
        ("WHERE strftime('%Y', s.start_date) = ?", "WHERE TO_CHAR(s.start_date, 'YYYY') = ?"),
        ("WHERE strftime('%m', s.start_date) = ?", "WHERE TO_CHAR(s.start_date, 'MM') = ?"),
        (
            "WHERE created_at >= CURRENT_TIMESTAMP - INTERVAL '7 days'",
            "WHERE created_at >= NOW() - INTERVAL '7 days'",
        ),
    ],
)
def test_idioms_rewrite_to_postgres(source, expected):
    assert substitute_idioms(source) == expected


def test_unknown_idiom_passes_through_unchanged():
    statement = "SELECT julianday('now') - julianday(created_at) FROM users WHERE strftime('%d', created_at) = '01'"
    assert substitute_idioms(statement) == statement


def test_idiom_table_is_ordered_data():
    names = [idiom.name for idiom in POSTGRES_IDIOMS]
    assert names == ['now', 'days_ago', 'current_date', 'year', 'month', 'timestamp_minus_week']


def test_placeholders_are_numbered_left_to_right():
    statement = 'SELECT * FROM videos WHERE exam_id = ? AND category = ? LIMIT ? OFFSET ?'
    rewritten = renumber_placeholders(statement)
    assert rewritten == 'SELECT * FROM videos WHERE exam_id = $1 AND category = $2 LIMIT $3 OFFSET $4'
    assert count_placeholders(statement) == 4
    assert count_placeholders(rewritten) == 0


def test_existing_numbered_placeholders_do_not_shift_counter():
    assert renumber_placeholders('SELECT $1, ?') == 'SELECT $1, $1'


def test_statement_without_placeholders_is_untouched():
    assert renumber_placeholders('SELECT 1') == 'SELECT 1'


def test_normalize_applies_idioms_then_placeholders():
    statement = (
        "SELECT COUNT(*) FROM user_progress "
        "WHERE user_id = ? AND created_at >= datetime('now', '-7 days') AND progress_type = ?"
    )
    assert normalize_sql_for_postgres(statement) == (
        "SELECT COUNT(*) FROM user_progress "
        "WHERE user_id = $1 AND created_at >= NOW() - INTERVAL '7 days' AND progress_type = $2"
    )


def test_question_mark_inside_literal_is_also_rewritten():
    # Rewriting is pattern based, not literal aware.
    assert renumber_placeholders("SELECT 'why?' WHERE id = ?") == "SELECT 'why$1' WHERE id = $2"


def test_idiom_inside_quotes_is_also_rewritten():
    statement = """SELECT created_at AS "datetime('now')" FROM users WHERE note = 'date(''now'')' OR note = 'date('now')'"""
    assert substitute_idioms(statement) == (
        """SELECT created_at AS "NOW()" FROM users WHERE note = 'date(''now'')' OR note = 'CURRENT_DATE'"""
    )
