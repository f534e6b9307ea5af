"""Pick a segment interactively, then add or remove one tag on all of its customers.

Requires the optional ``InquirerPy`` dependency::

    pip install -e .[interactive]
    python examples/demo_choose_segment_apply_tags.py add Loyal
"""

import logging
import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from tagsync import TagSync
from tagsync.tools.progress import SyncProgressBar, TagProgressBar
from tagsync.tools.segments import choose_segment

logging.basicConfig(level=logging.WARNING)


def main() -> None:
    if len(sys.argv) != 3 or sys.argv[1] not in ("add", "remove"):
        print("usage: demo_choose_segment_apply_tags.py add|remove TAG")
        return
    kind, tag = sys.argv[1], sys.argv[2]

    client = TagSync()
    segment = choose_segment(client.list_segments(refresh=True))
    if segment is None:
        return

    with SyncProgressBar() as bar:
        result = client.sync_segment(segment.name, observer=bar)
    if result.partial:
        print(f"Warning: stopped at the page ceiling; only {result.actual_count} customers retrieved.")

    with TagProgressBar(len(result.identifiers), desc=f"{kind} {tag}") as bar:
        outcome = client.apply_tags(result.identifiers, [{"type": kind, "tag": tag}], observer=bar)

    print(f"\n{outcome.success} succeeded, {outcome.failed} failed")
    for error in outcome.errors[:10]:
        print(f"  {error}")


if __name__ == "__main__":
    main()
