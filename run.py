# -*- coding: utf-8 -*-
import argparse
import logging
import threading
import warnings
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from table_impact.analyzer import ImpactAnalyzer
from table_impact.errors import IndexingCancelledError
from table_impact.reporting import REPORTERS, build_chain_graph, save_chain_graph, save_report
from table_impact.settings import ConfigManager

# Disable warning that could happen during work with networkx and JSON
warnings.simplefilter(action='ignore', category=FutureWarning)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Find the business-layer methods affected by a change to database tables."
    )
    parser.add_argument('root', type=Path, help="Root directory of the monolith")
    parser.add_argument('tables', nargs='+', help="Table names to analyze (case-insensitive)")
    parser.add_argument('--format', choices=sorted(REPORTERS), default='text', help="Report format")
    parser.add_argument('--settings', type=Path, default=None, help="YAML settings file")
    parser.add_argument('--output-dir', type=Path, default=None, help="Write reports into this directory")
    parser.add_argument('--graph', action='store_true', help="Also save each result as a node-link JSON graph")
    parser.add_argument('--workers', type=int, default=None, help="Worker processes used for indexing")
    return parser.parse_args(argv)


class ImpactAnalysisApp:
    """Runs the analyzer for the tables given on the command line and reports the results."""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        overrides = {'workers': args.workers} if args.workers else {}
        self.config = ConfigManager(args.settings, **overrides)
        self.logger = self.config.setup_logging()
        self.console = Console()
        self.reporter = REPORTERS[args.format]()
        self.cancel_event = threading.Event()

    def run(self) -> int:
        analyzer = ImpactAnalyzer(self.config, logger=self.logger.getChild('analyzer'))
        analyzer.initialize(self.args.root, cancel_event=self.cancel_event)
        self.print_statistics(analyzer.get_statistics())

        results = analyzer.analyze_tables(self.args.tables)
        for result in results.values():
            if self.args.output_dir:
                save_report(result, self.reporter, self.args.output_dir, logger=self.logger)
            else:
                self.console.print(self.reporter.render(result), markup=False, highlight=False)

            if self.args.graph:
                graph_dir = self.args.output_dir or self.config.cache_dir
                save_chain_graph(
                    build_chain_graph(result),
                    graph_dir / f"impact_graph_{result.table_name}.json",
                    logger=self.logger,
                )

        self.logger.info("Impact analysis completed successfully.")
        return 0

    def print_statistics(self, statistics):
        table = Table(title="Index statistics")
        table.add_column("Metric")
        table.add_column("Value", justify="right")
        for name, value in statistics.items():
            table.add_row(name.replace('_', ' '), str(value))
        self.console.print(table)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        return ImpactAnalysisApp(args).run()
    except IndexingCancelledError as e:
        logging.getLogger('table_impact').warning(f"{e}")
        return 130
    except KeyboardInterrupt:
        logging.getLogger('table_impact').warning("Interrupted.")
        return 130
    except Exception as e:
        logging.getLogger('table_impact').critical(f"A critical error occurred: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
