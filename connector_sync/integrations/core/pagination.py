from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any

from connector_sync.integrations.core.types import RequestDefinition


class PaginationStrategy(ABC):
    @abstractmethod
    def get_next_params(
        self, current_response: dict[str, Any], current_params: dict[str, Any]
    ) -> dict[str, Any] | None:
        pass

    @abstractmethod
    def extract_items(self, response: dict[str, Any]) -> list[Any]:
        pass

    def get_initial_params(self) -> dict[str, Any]:
        return {}

    def first_request(self, request: RequestDefinition) -> RequestDefinition:
        return replace(request, params={**self.get_initial_params(), **request.params})

    def next_request(
        self, request: RequestDefinition, response: dict[str, Any]
    ) -> RequestDefinition | None:
        next_params = self.get_next_params(response, request.params)
        if next_params is None:
            return None
        return replace(request, params=next_params)


class OffsetPagination(PaginationStrategy):
    """Offset/limit paging.

    The last page is detected from ``total`` or ``is_last`` when the vendor
    returns them, and from a short or empty page otherwise.
    """

    def __init__(
        self,
        offset_param: str,
        limit_param: str,
        items_key: str,
        total_key: str | None = None,
        is_last_key: str | None = None,
        default_limit: int = 50,
    ):
        self.offset_param = offset_param
        self.limit_param = limit_param
        self.items_key = items_key
        self.total_key = total_key
        self.is_last_key = is_last_key
        self.default_limit = default_limit

    def get_next_params(
        self, current_response: dict[str, Any], current_params: dict[str, Any]
    ) -> dict[str, Any] | None:
        items = self.extract_items(current_response)
        limit = int(current_params.get(self.limit_param, self.default_limit))
        offset = int(current_params.get(self.offset_param, 0))

        if not items or len(items) < limit:
            return None

        if self.is_last_key and current_response.get(self.is_last_key) is True:
            return None

        if self.total_key and current_response.get(self.total_key) is not None:
            if offset + len(items) >= int(current_response[self.total_key]):
                return None

        next_params = current_params.copy()
        next_params[self.offset_param] = offset + len(items)
        return next_params

    def extract_items(self, response: dict[str, Any]) -> list[Any]:
        return response.get(self.items_key) or []

    def get_initial_params(self) -> dict[str, Any]:
        return {
            self.offset_param: 0,
            self.limit_param: self.default_limit,
        }


class NextLinkPagination(PaginationStrategy):
    """Follows an absolute next-page URL returned in the response body.

    The next link is authoritative: a short page that still carries a link
    is followed.
    """

    def __init__(
        self,
        next_link_key: str,
        items_key: str,
        page_size_param: str | None = None,
        default_page_size: int = 50,
    ):
        self.next_link_key = next_link_key
        self.items_key = items_key
        self.page_size_param = page_size_param
        self.default_page_size = default_page_size

    def get_next_params(
        self, current_response: dict[str, Any], current_params: dict[str, Any]
    ) -> dict[str, Any] | None:
        # next links embed their own query string
        return {} if current_response.get(self.next_link_key) else None

    def next_request(
        self, request: RequestDefinition, response: dict[str, Any]
    ) -> RequestDefinition | None:
        next_link = response.get(self.next_link_key)
        if not next_link or not self.extract_items(response):
            return None
        return replace(request, url=next_link, params={})

    def extract_items(self, response: dict[str, Any]) -> list[Any]:
        return response.get(self.items_key) or []

    def get_initial_params(self) -> dict[str, Any]:
        if self.page_size_param:
            return {self.page_size_param: self.default_page_size}
        return {}


class NoPagination(PaginationStrategy):
    def __init__(self, items_key: str):
        self.items_key = items_key

    def get_next_params(
        self, current_response: dict[str, Any], current_params: dict[str, Any]
    ) -> dict[str, Any] | None:
        return None

    def extract_items(self, response: dict[str, Any]) -> list[Any]:
        return response.get(self.items_key) or []
