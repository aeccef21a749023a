import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

import networkx as nx
from networkx.readwrite import json_graph

from table_impact.models import ImpactAnalysisResult
from table_impact.utils import NameUtils

METHOD_NODE = "method"
REPOSITORY_NODE = "repository"
TABLE_NODE = "table"


class TextReporter:
    """Human-readable impact report."""

    extension = 'txt'

    def render(self, result: ImpactAnalysisResult) -> str:
        lines = [
            "=" * 80,
            f"Impact analysis for table: {result.table_name}",
            "=" * 80,
            f"Call chains: {len(result.call_chains)}",
            f"Business impacts: {len(result.impacts)}",
            f"Unresolved repository references: {len(result.unresolved_repository_references)}",
            "",
        ]

        if result.call_chains:
            lines.append("Call chains:")
            for i, chain in enumerate(result.call_chains, start=1):
                if chain.call_path:
                    lines.append(f"  {i}. {chain}")
                else:
                    lines.append(f"  {i}. {chain.repository_method} (no callers found)")
            lines.append("")

        if result.impacts:
            lines.append("Impacted business methods:")
            for impact in result.impacts:
                lines.append(
                    f"  - {impact.fully_qualified_service_method} <- {impact.fully_qualified_mapper_method}"
                    f" [{impact.module_name}: {impact.mapper_file}]"
                )
            lines.append("")

        if result.unresolved_repository_references:
            lines.append("Unresolved repository references:")
            lines.extend(f"  - {ref}" for ref in result.unresolved_repository_references)
            lines.append("")

        if result.warnings:
            lines.append("Warnings:")
            lines.extend(f"  ! {warning}" for warning in result.warnings)
            lines.append("")

        return '\n'.join(lines)


class JsonReporter:
    """Structured report: the camelCase result shape."""

    extension = 'json'

    def __init__(self, indent: Optional[int] = 2):
        self.indent = indent

    def render(self, result: ImpactAnalysisResult) -> str:
        return json.dumps(result.to_dict(), indent=self.indent, ensure_ascii=False)


REPORTERS = {
    'text': TextReporter,
    'json': JsonReporter,
}


def report_file_name(table_name: str, extension: str, timestamp: Optional[datetime] = None) -> str:
    timestamp = timestamp or datetime.now()
    return f"impact_analysis_{table_name}_{timestamp.strftime('%Y%m%d_%H%M%S')}.{extension}"


def save_report(result: ImpactAnalysisResult, reporter, output_dir: Path,
                logger: Optional[logging.Logger] = None) -> Optional[Path]:
    """Writes the rendered report into ``output_dir``; returns its path, or None if writing failed."""
    logger = logger or logging.getLogger('table_impact.reporting')
    report_file = Path(output_dir) / report_file_name(result.table_name, reporter.extension)
    try:
        report_file.parent.mkdir(parents=True, exist_ok=True)
        report_file.write_text(reporter.render(result), encoding='utf-8')
    except OSError as e:
        logger.error(f"Failed to write report {report_file}: {e}")
        return None
    logger.info(f"Report saved to {report_file}")
    return report_file


def build_chain_graph(result: ImpactAnalysisResult) -> nx.DiGraph:
    """Callers point to their callees; every repository method points to the table."""
    graph = nx.DiGraph()
    table_id = f"{TABLE_NODE}:{result.table_name}"
    graph.add_node(table_id, type=TABLE_NODE, name=result.table_name)

    for chain in result.call_chains:
        repository_id = f"{REPOSITORY_NODE}:{chain.repository_method}"
        graph.add_node(repository_id, type=REPOSITORY_NODE, name=chain.repository_method)
        graph.add_edge(repository_id, table_id, type='touches_table')

        hops = [f"{METHOD_NODE}:{method}" for method in chain.call_path] + [repository_id]
        for i, method in enumerate(chain.call_path):
            graph.add_node(
                hops[i], type=METHOD_NODE, name=method,
                label=NameUtils.simple_method_id(method), entry_point=(i == 0),
            )
        for i in range(len(chain.call_path)):
            graph.add_edge(hops[i], hops[i + 1], type='calls', line=chain.line_numbers[i])
    return graph


def save_chain_graph(graph: nx.DiGraph, graph_file: Path, logger: Optional[logging.Logger] = None) -> bool:
    """Saves the graph as node-link JSON."""
    logger = logger or logging.getLogger('table_impact.reporting')
    logger.info(f"Saving call-chain graph to {graph_file}...")
    try:
        graph_data: Dict = json_graph.node_link_data(graph, edges='links')
        graph_file.parent.mkdir(parents=True, exist_ok=True)
        with graph_file.open('w', encoding='utf-8') as f:
            json.dump(graph_data, f, indent=2, ensure_ascii=False)
        logger.info("Call-chain graph saved successfully.")
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Failed to save call-chain graph: {e}", exc_info=True)
        return False
