"""CLI demo that syncs a segment and tags its customers with :class:`tagsync.TagSync`.

Run with the virtual environment activated::

    python examples/demo_tagsync.py

Set ``TAGSYNC_STORE_URL`` and ``TAGSYNC_ACCESS_TOKEN`` to point at your store.
``TAGSYNC_REPEAT_BUYERS_FILTER`` enables the Repeat Buyers segment.
"""

import logging
import os
import sys
from pprint import pprint

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from tagsync import TagSync
from tagsync.tools.progress import SyncProgressBar, TagProgressBar

logging.basicConfig(level=logging.INFO)


def main() -> None:
    client = TagSync()

    print("Known segments:")
    for segment in client.list_segments(refresh=True):
        print(f"  {segment.name}: {segment.query or ('<all>' if segment.match_all else '<not configured>')}")
    print(f"VIP Customers count: {client.segment_count('VIP Customers')}")

    preview = client.preview_segment("VIP Customers", limit=5)
    print(f"\nFirst {len(preview)} VIP customers:")
    for record in preview:
        pprint({"id": record.id, "name": record.display_name, "tags": record.tags})

    with SyncProgressBar() as bar:
        result = client.sync_segment("New Customers", observer=bar)
    print(f"\nNew Customers: {result.actual_count} retrieved, {result.expected_count} expected, partial={result.partial}")

    if not result.records:
        print("Nothing to tag.")
        return

    with TagProgressBar(len(result.identifiers)) as bar:
        outcome = client.apply_tags(result.identifiers, [{"type": "add", "tag": "New"}], observer=bar)
    pprint(outcome.to_dict())


if __name__ == "__main__":
    main()
