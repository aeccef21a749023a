import argparse
import json
from pathlib import Path

from graphviz import Digraph
from networkx.readwrite import json_graph
import warnings

# Suppress FutureWarning
warnings.simplefilter(action='ignore', category=FutureWarning)

# --- Configuration ---
TABLE_NODE_COLOR = '#adffff'       # background table node
TABLE_BORDER_COLOR = '#0d00ff'
REPOSITORY_NODE_COLOR = '#bdff61'  # background repository method node
REPOSITORY_BORDER_COLOR = '#3c8c00'
ENTRY_NODE_COLOR = '#ffd699'       # outermost caller of a chain
METHOD_NODE_COLOR = '#f2f2f2'
METHOD_BORDER_COLOR = '#606060'
TABLE_NODE_SHAPE = 'cylinder'
REPOSITORY_NODE_SHAPE = 'Mrecord'
METHOD_NODE_SHAPE = 'box'
FONT_SIZE = '10'
CALL_EDGE_COLOR = '#ff990a'        # caller to callee
TABLE_EDGE_COLOR = '#0099f0'       # repository method to table
OTHER_EDGE_COLOR = '#c40000'
RANKDIR = 'BT'


def clean_node_id(node_id):
    """Create valid Graphviz node IDs by replacing problematic characters"""
    if isinstance(node_id, dict):
        # Handle case when node_id is a dictionary (from node attributes)
        return node_id['id'].replace(':', '_').replace('.', '_')
    return str(node_id).replace(':', '_').replace('.', '_')


def build_digraph(data: dict) -> Digraph:
    G = json_graph.node_link_graph(data, directed=True, multigraph=False, edges='links')

    dot = Digraph(
        format='png',
        engine='dot',
        graph_attr={
            'rankdir': RANKDIR,
            'splines': 'curved',
            'overlap': 'false',
            'fontsize': FONT_SIZE,
            'nodesep': '0.7',
            'ranksep': '1.1',
        },
        node_attr={
            'fontname': 'Arial',
            'fontsize': FONT_SIZE,
        },
        edge_attr={
            'fontname': 'Arial',
            'fontsize': FONT_SIZE,
        }
    )

    # First pass: nodes
    for node in G.nodes():
        attrs = G.nodes[node]
        node_id = clean_node_id(node)

        if attrs.get('type') == 'table':
            dot.node(
                node_id,
                label=attrs.get('name', ''),
                shape=TABLE_NODE_SHAPE,
                style='filled',
                fillcolor=TABLE_NODE_COLOR,
                color=TABLE_BORDER_COLOR,
                penwidth='1.7'
            )
        elif attrs.get('type') == 'repository':
            dot.node(
                node_id,
                label=attrs.get('name', ''),
                shape=REPOSITORY_NODE_SHAPE,
                style='filled',
                fillcolor=REPOSITORY_NODE_COLOR,
                color=REPOSITORY_BORDER_COLOR,
                penwidth='1.2'
            )
        else:
            dot.node(
                node_id,
                label=attrs.get('label') or attrs.get('name', ''),
                shape=METHOD_NODE_SHAPE,
                style='filled,rounded',
                fillcolor=ENTRY_NODE_COLOR if attrs.get('entry_point') else METHOD_NODE_COLOR,
                color=METHOD_BORDER_COLOR,
                penwidth='1.0'
            )

    # Second pass: edges
    for u, v, attrs in G.edges(data=True):
        u_id = clean_node_id(u)
        v_id = clean_node_id(v)

        if attrs.get('type') == 'calls':
            dot.edge(
                u_id, v_id,
                label=f"line {attrs['line']}" if attrs.get('line') else '',
                color=CALL_EDGE_COLOR,
                penwidth='1.2',
                arrowsize='0.9'
            )
        elif attrs.get('type') == 'touches_table':
            dot.edge(
                u_id, v_id,
                color=TABLE_EDGE_COLOR,
                penwidth='1.5',
                arrowsize='1.0',
                style='dashed'
            )
        else:
            dot.edge(
                u_id, v_id,
                color=OTHER_EDGE_COLOR,
                penwidth='1.2',
                arrowsize='1.0',
                style='dotted'
            )
    return dot


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Render a saved call-chain graph with Graphviz.")
    parser.add_argument('graph_file', type=Path, help="Node-link JSON written by run.py --graph")
    parser.add_argument('--output', default=None, help="Output file name without extension")
    args = parser.parse_args()

    with args.graph_file.open(encoding='utf-8') as f:
        data = json.load(f)

    output = args.output or args.graph_file.with_suffix('').name
    print("Rendering graph...")
    build_digraph(data).render(output, cleanup=True, format='png')
    print(f"Graph saved as {output}.png")
