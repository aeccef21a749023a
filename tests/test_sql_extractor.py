import pytest

from table_impact.sql_extractor import TableReferenceExtractor, extract_table_names

EXTRACTION_CASES = [
    ("SELECT * FROM tbl_a, tbl_b", {"TBL_A", "TBL_B"}),
    ("SELECT o.id FROM schema1.ORDERS o", {"ORDERS"}),
    ("WHERE id = #{id} AND name = ${name} AND code = :code", set()),
    ("SELECT * FROM tbl_a a, tbl_b AS b WHERE a.id = b.id", {"TBL_A", "TBL_B"}),
    ("SELECT * FROM orders o JOIN customers c ON c.id = o.customer_id", {"ORDERS", "CUSTOMERS"}),
    ("UPDATE `inventory` SET qty = #{qty}", {"INVENTORY"}),
    ("INSERT INTO audit_log (event) VALUES (#{event})", {"AUDIT_LOG"}),
    ('DELETE FROM "sales"."ORDER_LINES" WHERE id = ?', {"ORDER_LINES"}),
    ("MERGE INTO stock s USING incoming i ON s.id = i.id", {"STOCK", "INCOMING"}),
    ("SELECT * FROM [dbo].[Users] u", {"USERS"}),
    ("SELECT * FROM users WHERE id = #id# AND name = $name$", {"USERS"}),
    ("SELECT * FROM ${tableName}", set()),
    ("SELECT * FROM (SELECT id FROM inner_table) t", {"INNER_TABLE"}),
    ("SELECT a FROM t1 /* FROM ghost */ -- FROM other\n WHERE x = 1", {"T1"}),
    ('SELECT * FROM orders <if test="id != null">WHERE id = #{id}</if>', {"ORDERS"}),
    ("select * from Orders where status in ('A', 'B')", {"ORDERS"}),
    ("", set()),
    ("   ", set()),
]


@pytest.mark.parametrize("sql, expected", EXTRACTION_CASES)
def test_extract_table_names(sql, expected):
    assert extract_table_names(sql) == expected


def test_clean_neutralizes_placeholders_and_whitespace():
    cleaned = TableReferenceExtractor.clean("SELECT  *\n  FROM t\tWHERE a = #{a} AND b = $b$")
    assert cleaned == "SELECT * FROM t WHERE a = ? AND b = ?"


def test_clean_strips_dynamic_tags_but_keeps_their_text():
    sql = '<where><if test="x">status = #{status}</if></where>'
    assert TableReferenceExtractor.clean(sql) == "status = ?"


def test_custom_keyword_stoplist():
    extractor = TableReferenceExtractor(keywords={"DUAL", "AUDIT_LOG"})
    assert extractor.extract("INSERT INTO audit_log SELECT * FROM events") == {"EVENTS"}
