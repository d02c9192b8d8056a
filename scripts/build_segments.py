from __future__ import annotations

import argparse

from stream_translate import storage
from stream_translate.html_parser import RULESET_VERSION, nodes_to_rows, segment_html
from stream_translate.utils import sha1_text


def main() -> None:
    parser = argparse.ArgumentParser(description="Dump the node segmentation of an article body.")
    parser.add_argument("--html", required=True, help="Path to source HTML")
    parser.add_argument("--out", required=True, help="Output segments.json")
    parser.add_argument("--csv-out", default="", help="Optional CSV overview (one row per node)")
    args = parser.parse_args()

    html_text = storage.read_text(args.html)
    nodes = segment_html(html_text)
    rows = nodes_to_rows(nodes)

    storage.write_json(
        args.out,
        {
            "rulesetVersion": RULESET_VERSION,
            "sourceSha1": sha1_text(html_text),
            "nodes": rows,
        },
    )
    if args.csv_out:
        storage.write_segments_csv(args.csv_out, rows)

    preserved = sum(1 for n in nodes if n.preserved)
    print(f"Wrote {len(nodes)} nodes ({preserved} preserved) to {args.out}")


if __name__ == "__main__":
    main()
