from __future__ import annotations

from dataclasses import dataclass, field

from pymongo import MongoClient
from pymongo.database import Database


@dataclass
class MongoClientFactory:
    uri: str
    db_name: str
    _client: MongoClient | None = field(default=None, init=False, repr=False)

    def get_database(self) -> Database:
        if not self.db_name:
            raise RuntimeError("MongoDB database name must be configured")
        if self._client is None:
            self._client = MongoClient(self.uri, tz_aware=True)
        return self._client[self.db_name]
