"""An in-memory bucket store holding advisories, details and data sources."""

from __future__ import annotations

import copy
import json
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Sequence

from .types import Advisories, Advisory, DataSource, VulnerabilityDetail

DATA_SOURCE_BUCKET = "data-source"
ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"


class StoreError(Exception):
    """Raised when the store holds or is asked for something it cannot give."""


class Store:
    """Nested buckets of JSON values, addressed by a path of keys.

    Buckets are dictionaries; values are JSON text. Initial content may be
    passed in the same form, which lets a store be loaded from fixtures.
    """

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(dict(data)) if data else {}

    @contextmanager
    def transaction(self) -> Iterator[Store]:
        """Apply the writes made in the block together, or none of them."""
        snapshot = copy.deepcopy(self._root)
        try:
            yield self
        except BaseException:
            self._root = snapshot
            raise

    def _put(self, path: Sequence[str], value: Any) -> None:
        *buckets, key = path
        node = self._root
        for name in buckets:
            child = node.setdefault(name, {})
            if not isinstance(child, dict):
                raise StoreError(f"{'/'.join(path)}: {name!r} is a value, not a bucket")
            node = child
        if isinstance(node.get(key), dict):
            raise StoreError(f"{'/'.join(path)}: {key!r} is a bucket, not a value")
        node[key] = json.dumps(value)

    def _node(self, path: Sequence[str]) -> Any:
        node: Any = self._root
        for name in path:
            if not isinstance(node, dict) or name not in node:
                raise KeyError("/".join(path))
            node = node[name]
        return node

    @staticmethod
    def _decode(raw: Any, path: Sequence[str]) -> Any:
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise StoreError(f"{'/'.join(path)}: json unmarshal error: {exc}") from exc

    def put_data_source(self, bucket_name: str, source: DataSource) -> None:
        self._put([DATA_SOURCE_BUCKET, bucket_name], source.to_dict())

    def put_advisory_detail(
        self,
        vuln_id: str,
        pkg_name: str,
        bucket_names: Sequence[str],
        advisory: Advisory | Advisories,
    ) -> None:
        path = [ADVISORY_DETAIL_BUCKET, vuln_id, *bucket_names, pkg_name]
        self._put(path, advisory.to_dict())

    def put_vulnerability_detail(
        self, vuln_id: str, source_id: str, detail: VulnerabilityDetail
    ) -> None:
        self._put([VULNERABILITY_DETAIL_BUCKET, vuln_id, source_id], detail.to_dict())

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self._put([VULNERABILITY_ID_BUCKET, vuln_id], {})

    def get(self, *args: str) -> Any:
        """Return the decoded value at the path; KeyError if there is none."""
        node = self._node(args)
        if isinstance(node, dict):
            raise StoreError(f"{'/'.join(args)} is a bucket, not a value")
        return self._decode(node, args)

    def has(self, *args: str) -> bool:
        """Tell whether a bucket or a value exists at the path."""
        try:
            self._node(args)
        except KeyError:
            return False
        return True

    def _data_source(self, bucket_name: str) -> DataSource | None:
        path = [DATA_SOURCE_BUCKET, bucket_name]
        try:
            raw = self._node(path)
        except KeyError:
            return None
        if isinstance(raw, dict):
            raise StoreError(f"{'/'.join(path)} is a bucket, not a value")
        decoded = self._decode(raw, path)
        if not isinstance(decoded, dict):
            raise StoreError(f"{'/'.join(path)}: malformed data source")
        source = DataSource.from_dict(decoded)
        return None if source == DataSource() else source

    def for_each_advisory(
        self, bucket_names: Sequence[str], pkg_name: str
    ) -> dict[str, tuple[Any, DataSource | None]]:
        """Map each vulnerability ID to the raw advisory content and its data source."""
        source = self._data_source(bucket_names[0]) if bucket_names else None
        root = self._root.get(ADVISORY_DETAIL_BUCKET, {})
        if not isinstance(root, dict):
            raise StoreError(f"{ADVISORY_DETAIL_BUCKET} is a value, not a bucket")
        found: dict[str, tuple[Any, DataSource | None]] = {}
        for vuln_id in sorted(root):
            path = [vuln_id, *bucket_names, pkg_name]
            node: Any = root
            for name in path:
                if not isinstance(node, dict) or name not in node:
                    node = None
                    break
                node = node[name]
            if node is None:
                continue
            if isinstance(node, dict):
                raise StoreError(f"{'/'.join(path)} is a bucket, not a value")
            found[vuln_id] = (self._decode(node, path), source)
        return found

    def get_advisories(self, bucket_name: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of a package in a bucket, ordered by vulnerability ID."""
        advisories = []
        for vuln_id, (content, source) in self.for_each_advisory([bucket_name], pkg_name).items():
            try:
                advisory = Advisory.from_dict(content)
            except (AttributeError, TypeError, ValueError) as exc:
                raise StoreError(f"{vuln_id}: malformed advisory: {exc}") from exc
            advisory.vulnerability_id = vuln_id
            advisory.data_source = source
            advisories.append(advisory)
        return advisories