import threading

import pytest

import table_impact.table_index as table_index_module
from table_impact.analyzer import ImpactAnalyzer
from table_impact.call_index import CallSiteExtractor, CallSiteIndex
from table_impact.errors import AnalyzerNotInitializedError, IndexingCancelledError
from table_impact.models import CallReference, CallSite, MapperStatement, TableRepositoryMapping
from table_impact.policy import NamingPolicy

SEED = "OrderDao.find"


def _statement(statement_id="find", mapper_path="/repo/src/com/acme/dao/sql/OrderDao.xml"):
    return MapperStatement("core", mapper_path, "com.acme.dao.OrderDao", statement_id, "select",
                           f"SELECT * FROM ORDERS -- {statement_id}")


def _analyzer(config, edges, repository_methods=(SEED,), policy=None):
    """An analyzer over table ORDERS whose call graph is given as (callee, caller, line) edges."""
    statements = [_statement(m.rsplit(".", 1)[-1]) for m in repository_methods]
    mapping = TableRepositoryMapping(
        table_name="ORDERS",
        mapper_files=[statements[0].mapper_path],
        repository_classes=["OrderDao"],
        repository_methods=list(repository_methods),
    )
    index = CallSiteIndex.from_call_sites(
        CallSite(callee, CallReference(caller, f"{caller.rsplit('.', 1)[0]}.java", line))
        for callee, caller, line in edges
    )
    return ImpactAnalyzer.from_indices(config, {"ORDERS": statements}, {"ORDERS": mapping}, index, policy=policy)


def test_query_before_initialize_fails(config):
    analyzer = ImpactAnalyzer(config)

    with pytest.raises(AnalyzerNotInitializedError):
        analyzer.analyze_table_impact("orders")
    with pytest.raises(AnalyzerNotInitializedError):
        analyzer.analyze_tables(["orders"])
    assert analyzer.get_statistics()["tables_indexed"] == 0


def test_end_to_end_single_chain(config, write_java):
    lines = [
        "public class OrderServiceImpl {",      # 1
        "    private OrderDao orderDao;",        # 2
        "",                                      # 3
        "    public Order getOrder(long id) {",  # 4
    ]
    lines += ["        // load the order"] * (41 - len(lines))
    lines += [
        "        return orderDao.findById(id);",  # 42
        "    }",
        "}",
    ]
    path = write_java("OrderServiceImpl.java", lines)
    index = CallSiteIndex.from_call_sites(CallSiteExtractor().extract(path).call_sites)
    statement = _statement("findById")
    mapping = TableRepositoryMapping("ORDERS", [statement.mapper_path], ["OrderDao"], ["OrderDao.findById"])
    analyzer = ImpactAnalyzer.from_indices(config, {"ORDERS": [statement]}, {"ORDERS": mapping}, index)

    result = analyzer.analyze_table_impact("orders")

    assert [chain.to_dict() for chain in result.call_chains] == [{
        "callPath": ["OrderServiceImpl.getOrder"],
        "lineNumbers": [42],
        "repositoryMethod": "OrderDao.findById",
        "tableName": "ORDERS",
    }]
    assert result.table_name == "ORDERS"
    assert result.warnings == []
    assert [impact.fully_qualified_service_method for impact in result.impacts] == ["OrderServiceImpl.getOrder"]


def test_unknown_table_yields_warning_only(config):
    analyzer = _analyzer(config, [])

    result = analyzer.analyze_table_impact("INVOICES")

    assert result.impacts == []
    assert result.call_chains == []
    assert result.warnings == ["No mapper methods found for table: INVOICES"]


def test_method_without_callers_yields_one_empty_chain(config):
    result = _analyzer(config, []).analyze_table_impact("orders")

    assert len(result.call_chains) == 1
    chain = result.call_chains[0]
    assert chain.call_path == ()
    assert chain.repository_method == SEED
    assert result.warnings == [f"No callers found for repository method: {SEED}"]


def test_business_layer_caller_ends_the_chain(config):
    edges = [
        (SEED, "com.acme.service.OrderService.load", 10),
        ("com.acme.service.OrderService.load", "com.acme.web.OrderController.show", 20),
    ]

    chains = _analyzer(config, edges).analyze_table_impact("orders").call_chains

    assert [c.call_path for c in chains] == [("com.acme.service.OrderService.load",)]
    assert chains[0].line_numbers == (10,)


def test_chain_climbs_until_no_callers_remain(config):
    edges = [
        (SEED, "com.acme.batch.Sync.pull", 5),
        ("com.acme.batch.Sync.pull", "com.acme.batch.Job.run", 7),
    ]

    chains = _analyzer(config, edges).analyze_table_impact("orders").call_chains

    assert [(c.call_path, c.line_numbers) for c in chains] == [
        (("com.acme.batch.Job.run", "com.acme.batch.Sync.pull"), (7, 5)),
    ]


def test_cycles_terminate_with_distinct_entries(config):
    edges = [
        (SEED, "p.X.a", 1),
        ("p.X.a", "p.X.a", 2),
        ("p.X.a", "p.X.b", 3),
        ("p.X.b", "p.X.a", 4),
        ("p.X.b", "p.X.c", 5),
        ("p.X.c", SEED, 6),
        ("p.X.b", "p.Job.run", 7),
    ]

    chains = _analyzer(config, edges).analyze_table_impact("orders").call_chains

    assert [(c.call_path, c.line_numbers) for c in chains] == [
        (("p.Job.run", "p.X.b", "p.X.a"), (7, 3, 1)),
    ]


def test_closed_cycle_yields_no_chain(config):
    edges = [
        (SEED, "p.X.a", 1),
        ("p.X.a", "p.X.b", 2),
        ("p.X.b", "p.X.a", 3),
    ]

    result = _analyzer(config, edges).analyze_table_impact("orders")

    assert [c.call_path for c in result.call_chains] == [()]
    assert result.warnings == [f"No callers found for repository method: {SEED}"]


def test_same_method_may_appear_in_independent_chains(config):
    edges = [
        (SEED, "p.Helper.load", 1),
        (SEED, "p.Helper.reload", 2),
        ("p.Helper.load", "p.OrderService.a", 3),
        ("p.Helper.reload", "p.OrderService.a", 4),
    ]

    chains = _analyzer(config, edges).analyze_table_impact("orders").call_chains

    assert sorted(c.call_path for c in chains) == [
        ("p.OrderService.a", "p.Helper.load"),
        ("p.OrderService.a", "p.Helper.reload"),
    ]


def test_recursive_repository_method_is_not_its_own_caller(config):
    chains = _analyzer(config, [(SEED, SEED, 3)]).analyze_table_impact("orders").call_chains

    assert [c.call_path for c in chains] == [()]


def test_recursive_packaged_repository_method_is_not_its_own_caller(config, write_java):
    path = write_java("com/acme/dao/OrderDao.java", [
        "package com.acme.dao;",
        "",
        "public class OrderDao {",
        "    public int find(int n) {",
        "        return n <= 0 ? 0 : find(n - 1);",
        "    }",
        "}",
    ])
    index = CallSiteIndex.from_call_sites(CallSiteExtractor().extract(path).call_sites)
    statement = _statement("find")
    mapping = TableRepositoryMapping("ORDERS", [statement.mapper_path], ["OrderDao"], [SEED])
    analyzer = ImpactAnalyzer.from_indices(config, {"ORDERS": [statement]}, {"ORDERS": mapping}, index)

    chains = analyzer.analyze_table_impact("orders").call_chains

    assert "com.acme.dao.OrderDao.find" in index
    assert [(c.call_path, c.repository_method) for c in chains] == [((), SEED)]


def test_concurrent_queries_over_unqualified_seeds(config):
    tables = [f"T{k}" for k in range(16)]
    filler = (
        CallSite(f"com.acme.filler.Filler{n}.run", CallReference(f"com.acme.filler.Caller{n}.go", "F.java", n))
        for n in range(50000)
    )
    seeded = [
        CallSite(f"com.acme.dao.Dao{k}.find", CallReference(f"com.acme.service.Service{k}.load", "S.java", k + 1))
        for k in range(len(tables))
    ]
    index = CallSiteIndex.from_call_sites(list(filler) + seeded)
    table_index = {}
    mappings = {}
    for k, table in enumerate(tables):
        statement = MapperStatement("core", f"/repo/src/dao/sql/Dao{k}.xml", f"com.acme.dao.Dao{k}", "find")
        table_index[table] = [statement]
        mappings[table] = TableRepositoryMapping(table, [statement.mapper_path], [f"Dao{k}"], [f"Dao{k}.find"])
    analyzer = ImpactAnalyzer.from_indices(config, table_index, mappings, index)

    results = analyzer.analyze_tables(tables, workers=16)

    for k, table in enumerate(tables):
        assert [c.call_path for c in results[table].call_chains] == [(f"com.acme.service.Service{k}.load",)]


def test_naming_policy_is_injectable(config):
    edges = [
        (SEED, "p.OrderHandler.handle", 1),
        ("p.OrderHandler.handle", "p.Dispatcher.dispatch", 2),
    ]
    policy = NamingPolicy(business_layer_markers=("Handler",), business_layer_suffixes=())

    chains = _analyzer(config, edges, policy=policy).analyze_table_impact("orders").call_chains

    assert [c.call_path for c in chains] == [("p.OrderHandler.handle",)]


def test_unconventional_repository_class_is_reported(config):
    analyzer = _analyzer(config, [], repository_methods=("OrderGateway.find",))

    result = analyzer.analyze_table_impact("orders")

    assert "Repository class does not follow the data-access naming convention: OrderGateway" in result.warnings


@pytest.fixture
def initialized(config, monolith):
    analyzer = ImpactAnalyzer(config)
    analyzer.initialize(monolith)
    return analyzer


def test_initialize_builds_all_indices(initialized):
    stats = initialized.get_statistics()

    assert initialized.initialized
    assert stats["tables_indexed"] == 3
    assert stats["repository_mappings"] == 3
    assert stats["resolved_repository_methods"] == 4
    assert stats["source_files_indexed"] == 6
    assert stats["source_files_failed"] == 1
    assert stats["total_call_references"] > 0


def test_monolith_chains_for_orders(initialized):
    result = initialized.analyze_table_impact("Orders")
    chains = {}
    for chain in result.call_chains:
        chains.setdefault(chain.repository_method, []).append(chain)

    find_by_id = chains["OrderDao.findById"]
    assert [(c.call_path, c.line_numbers) for c in find_by_id] == [
        (("com.shop.service.OrderServiceImpl.getOrder",), (15,)),
    ]

    by_customer = {(c.call_path, c.line_numbers) for c in chains["OrderDao.findByCustomer"]}
    assert by_customer == {
        (("com.shop.batch.OrderSync.run", "com.shop.batch.OrderSync.sync"), (15, 19)),
    }

    inserters = {c.call_path for c in chains["OrderDao.insertOrder"]}
    assert inserters == {
        ("com.shop.service.OrderServiceImpl.placeOrder",),
        ("com.shop.admin.AdminFacade.importOrders",),
    }

    assert result.unresolved_repository_references == ["[N/A]-OrderDao.purgeArchived"]
    impacted = {(i.mapper_statement_id, i.fully_qualified_service_method) for i in result.impacts}
    assert ("findById", "com.shop.service.OrderServiceImpl.getOrder") in impacted
    assert ("insertOrder", "com.shop.admin.AdminFacade.importOrders") in impacted


def test_monolith_table_without_repository(initialized):
    result = initialized.analyze_table_impact("audit_log")

    assert result.call_chains == []
    assert result.unresolved_repository_references == ["[N/A]-AuditDao"]
    assert result.warnings == ["No resolved repository methods for table: AUDIT_LOG"]


def test_analyze_tables_keeps_input_names(initialized):
    results = initialized.analyze_tables(["orders", "customers", "missing"])

    assert list(results) == ["orders", "customers", "missing"]
    assert results["customers"].table_name == "CUSTOMERS"
    assert results["missing"].warnings == ["No mapper methods found for table: MISSING"]


def test_reinitialize_reuses_caches(config, monolith, monkeypatch):
    ImpactAnalyzer(config).initialize(monolith)
    monkeypatch.setattr(table_index_module, "parse_mapper_tables", None)

    analyzer = ImpactAnalyzer(config)
    analyzer.initialize(monolith)

    assert analyzer.get_statistics()["tables_indexed"] == 3


def test_cancelled_initialize_leaves_analyzer_unusable(config, monolith):
    cancel_event = threading.Event()
    cancel_event.set()
    analyzer = ImpactAnalyzer(config)

    with pytest.raises(IndexingCancelledError):
        analyzer.initialize(monolith, cancel_event)

    assert not analyzer.initialized
    with pytest.raises(AnalyzerNotInitializedError):
        analyzer.analyze_table_impact("orders")


def test_failed_table_index_stops_the_call_site_scan(config, monolith, monkeypatch):
    analyzer = ImpactAnalyzer(config)
    stopped = []

    def failing_build(modules, cancel_event=None):
        raise RuntimeError("mapper directory vanished")

    def waiting_build(source_files, cancel_event=None):
        stopped.append(cancel_event.wait(timeout=10))
        raise IndexingCancelledError("Indexing was cancelled")

    monkeypatch.setattr(analyzer.table_indexer, "build", failing_build)
    monkeypatch.setattr(analyzer.call_site_indexer, "build", waiting_build)

    with pytest.raises(RuntimeError, match="mapper directory vanished"):
        analyzer.initialize(monolith)

    assert stopped == [True]
    assert not analyzer.initialized
