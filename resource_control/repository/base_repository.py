from abc import ABC, abstractmethod


class BaseRepository(ABC):
    @abstractmethod
    def create(self, data):
        """Validate and insert a new document (or a list of them)."""
        pass

    @abstractmethod
    def find(self, query=None):
        """Build a query for documents matching the filter."""
        pass

    @abstractmethod
    def find_one(self, query):
        """Build a query for a single document matching the filter."""
        pass

    @abstractmethod
    def update(self, query, update_fields):
        """Set the given fields on the first document matching the query."""
        pass

    @abstractmethod
    def delete(self, query):
        """Delete documents matching the query."""
        pass
