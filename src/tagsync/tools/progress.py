"""tqdm progress bars for segment syncs and bulk tagging."""

from __future__ import annotations

from typing import Any, Optional

from tqdm import tqdm

from tagsync.mutator import TagResult
from tagsync.resources.segments_types import SyncProgress


class SyncProgressBar:
    """Sync observer that advances a progress bar by the records folded per page.

    The bar is created on the first event so its total can use the upstream's
    expected count, which is only known once the sync has started.
    """

    def __init__(self, *, desc: Optional[str] = None, unit: str = " customers", **tqdm_kwargs: Any) -> None:
        self.desc = desc
        self.unit = unit
        self._tqdm_kwargs = tqdm_kwargs
        self.bar: Optional[tqdm] = None

    def __call__(self, progress: SyncProgress) -> None:
        if self.bar is None:
            self.bar = tqdm(
                total=progress.expected_count,
                desc=self.desc or f"Syncing {progress.segment}",
                unit=self.unit,
                **self._tqdm_kwargs,
            )
        self.bar.update(progress.records - self.bar.n)
        self.bar.set_postfix(pages=progress.pages)
        if progress.done:
            self.close()

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()

    def __enter__(self) -> "SyncProgressBar":
        return self

    def __exit__(self, *_exc: object) -> bool:
        self.close()
        return False


class TagProgressBar:
    """Bulk tagging observer: one tick per customer, failures shown as a postfix."""

    def __init__(
        self,
        total: int,
        *,
        desc: str = "Tagging customers",
        unit: str = " customers",
        **tqdm_kwargs: Any,
    ) -> None:
        self.failed = 0
        self.bar = tqdm(total=total, desc=desc, unit=unit, **tqdm_kwargs)

    def __call__(self, result: TagResult) -> None:
        if not result.ok:
            self.failed += 1
            self.bar.set_postfix(failed=self.failed)
        self.bar.update(1)

    def close(self) -> None:
        self.bar.close()

    def __enter__(self) -> "TagProgressBar":
        return self

    def __exit__(self, *_exc: object) -> bool:
        self.close()
        return False


__all__ = ["SyncProgressBar", "TagProgressBar"]
