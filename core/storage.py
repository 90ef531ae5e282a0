"""
Flat-file storage for the marketplace.

Every collection lives in its own JSON file (``projects.json``,
``project-tasks.json`` ...). A write always rewrites the whole file; there is no
locking, so two writers racing on the same file can lose one of the updates.
Reads never raise: a missing or unreadable file is logged and returned as an
empty collection.
"""
import copy
import json
import logging
import os
from pathlib import Path

from django.conf import settings

logger = logging.getLogger(__name__)

PROJECTS = 'projects'
PROJECT_TASKS = 'project-tasks'
ORGANIZATIONS = 'organizations'
PROPOSALS = 'proposals'
PROPOSAL_DRAFTS = 'proposal-drafts'
INVOICES = 'invoices'
GIGS = 'gigs'
GIG_APPLICATIONS = 'gig-applications'
GIG_REQUESTS = 'gig-requests'

COLLECTIONS = [
    PROJECTS, PROJECT_TASKS, ORGANIZATIONS, PROPOSALS, PROPOSAL_DRAFTS, INVOICES,
    GIGS, GIG_APPLICATIONS, GIG_REQUESTS,
]


class BaseStore:
    """Read/replace access to named collections of JSON records"""

    def read(self, collection):
        raise NotImplementedError

    def write(self, collection, records):
        raise NotImplementedError

    def update(self, collection, mutate):
        """Read the collection, hand it to ``mutate`` and write the result back.

        ``mutate`` may change the list in place or return a new one.
        """
        records = self.read(collection)
        result = mutate(records)
        if result is None:
            result = records
        self.write(collection, result)
        return result


class JSONFileStore(BaseStore):
    def __init__(self, data_dir):
        self.data_dir = Path(data_dir)

    def path_for(self, collection):
        return self.data_dir / f"{collection}.json"

    def read(self, collection):
        path = self.path_for(collection)
        if not path.exists():
            return []
        try:
            with open(path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not read {path}: {str(e)}")
            return []

        if not isinstance(data, list):
            logger.error(f"Ignoring {path}: expected a JSON list, got {type(data).__name__}")
            return []
        return data

    def write(self, collection, records):
        os.makedirs(self.data_dir, exist_ok=True)
        path = self.path_for(collection)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(records, f, indent=2, ensure_ascii=False)
            f.write('\n')
        logger.debug(f"Wrote {len(records)} records to {path}")


class InMemoryStore(BaseStore):
    """Dict-backed store; hands out copies so callers cannot mutate it behind its back"""

    def __init__(self, initial=None):
        self._collections = {}
        for collection, records in (initial or {}).items():
            self.write(collection, records)

    def read(self, collection):
        return copy.deepcopy(self._collections.get(collection, []))

    def write(self, collection, records):
        self._collections[collection] = copy.deepcopy(list(records))

    def clear(self):
        self._collections.clear()


_memory_store = InMemoryStore()


def get_store():
    """Return the store configured by ``FLATFILE_BACKEND``"""
    backend = getattr(settings, 'FLATFILE_BACKEND', 'file')
    if backend == 'memory':
        return _memory_store
    return JSONFileStore(settings.FLATFILE_DATA_DIR)
