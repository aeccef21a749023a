import json

import run


def test_cli_writes_reports_and_graphs(monolith, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    output_dir = tmp_path / "reports"

    exit_code = run.main([str(monolith), "orders", "audit_log", "--format", "json",
                          "--output-dir", str(output_dir), "--graph", "--workers", "1"])

    assert exit_code == 0
    reports = sorted(output_dir.glob("impact_analysis_*.json"))
    assert [r.name.split("_")[2] for r in reports] == ["AUDIT", "ORDERS"]
    orders = json.loads(next(r for r in reports if "ORDERS" in r.name).read_text(encoding="utf-8"))
    assert orders["tableName"] == "ORDERS"
    assert orders["unresolvedRepositoryReferences"] == ["[N/A]-OrderDao.purgeArchived"]
    assert (output_dir / "impact_graph_ORDERS.json").is_file()
    assert (tmp_path / ".impact_cache" / "table_xml_mapping.json").is_file()


def test_cli_reports_configuration_errors(monolith, tmp_path):
    exit_code = run.main([str(monolith), "orders", "--settings", str(tmp_path / "missing.yml")])

    assert exit_code == 1
