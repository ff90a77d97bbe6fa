"""
Model storage: a local key/value blob store plus file export/import.

LocalModelStore keeps one blob per key in a directory, the desktop
analogue of browser local storage. ModelStore binds a classifier to a
LocalModelStore. Export files use the same blob text, so a model saved
locally can be exported, copied and imported elsewhere unchanged.

Errors are not swallowed: OSError and MalformedPersistedModelError reach
the caller, and a failed import leaves the classifier as it was.
"""

import os
import logging
import tempfile
from typing import Optional

from handsign.core.errors import MalformedPersistedModelError
from handsign.modules.utils.logger import log_timing

logger = logging.getLogger(__name__)


def _write_atomic(path: str, text: str):
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class LocalModelStore:
    """One blob per key, stored as ``<directory>/<key>.json``."""

    def __init__(self, directory: str, key: str = "isl_model"):
        self._directory = os.path.expanduser(directory)
        self._key = key

    @property
    def path(self) -> str:
        return os.path.join(self._directory, "%s.json" % self._key)

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read(self) -> Optional[str]:
        """Stored blob, or None if nothing was stored."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def write(self, blob: str):
        _write_atomic(self.path, blob)
        logger.debug("Wrote %d bytes to %s", len(blob), self.path)

    def remove(self) -> bool:
        try:
            os.remove(self.path)
            return True
        except FileNotFoundError:
            return False


class ModelStore:
    """Save / restore / export / import / clear for one classifier.

    Usage::

        store = ModelStore(classifier, LocalModelStore("~/.handsign"))
        store.restore()
        ...
        store.save()
        store.export_to("hello_yes.json")
    """

    def __init__(self, classifier, local_store: LocalModelStore):
        self._classifier = classifier
        self._local = local_store

    @property
    def local(self) -> LocalModelStore:
        return self._local

    @log_timing
    def save(self) -> int:
        """Persist the classifier to local storage. Returns examples saved."""
        blob = self._classifier.save()
        self._local.write(blob)
        total = self._classifier.total_examples
        logger.info("Saved model (%d examples) to %s", total, self._local.path)
        return total

    @log_timing
    def restore(self) -> int:
        """Load the locally stored model, if any. Returns examples loaded."""
        blob = self._local.read()
        if blob is None:
            logger.info("No stored model at %s", self._local.path)
            return 0
        return self._classifier.load(blob)

    @log_timing
    def export_to(self, path: str) -> int:
        """Write the classifier's blob to ``path``. Returns examples exported."""
        _write_atomic(os.path.expanduser(path), self._classifier.save())
        total = self._classifier.total_examples
        logger.info("Exported model (%d examples) to %s", total, path)
        return total

    @log_timing
    def import_from(self, path: str) -> int:
        """Replace the classifier's dataset with the blob in ``path``."""
        with open(os.path.expanduser(path), "r", encoding="utf-8") as f:
            blob = f.read()
        if not blob.strip():
            # Unlike a startup restore, an explicit import of nothing is an error
            raise MalformedPersistedModelError("Model file is empty: %s" % path)
        loaded = self._classifier.load(blob)
        logger.info("Imported model (%d examples) from %s", loaded, path)
        return loaded

    def clear(self) -> bool:
        """Clear the classifier and remove the stored blob.

        Returns:
            True if a stored blob was removed
        """
        self._classifier.clear()
        removed = self._local.remove()
        logger.info("Cleared model%s", " and stored blob" if removed else "")
        return removed
