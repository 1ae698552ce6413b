from collections.abc import Callable
from typing import Any

import httpx

from ipgeo.errors import ApiError
from ipgeo.frontend.api import GeoApi
from ipgeo.logger import logger
from ipgeo.validators import is_valid_ip

SELF_LOOKUP_FAILED = "Failed to fetch your geolocation"
IP_LOOKUP_FAILED = "Failed to fetch geolocation for this IP"
DELETE_FAILED = "Failed to delete history"


def extract_coordinates(geo_data: dict[str, Any] | None) -> tuple[float, float] | None:
    """Parse the provider's ``loc`` field ("lat,lng") into a pair of floats.

    Returns None when there is no usable location.
    """
    if not geo_data or not geo_data.get("loc"):
        return None
    parts = str(geo_data["loc"]).split(",")
    if len(parts) != 2:
        return None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None


class HomeDashboard:
    """State behind the home view: search box, current result, map and history list.

    Methods mirror the user actions on the page. Nothing here renders; a view
    reads the attributes after each action. `map_key` changes whenever the map
    has to be re-centred.
    """

    def __init__(self, api: GeoApi) -> None:
        self.api = api
        self.ip_input = ""
        self.geo_data: dict[str, Any] | None = None
        self.history: list[dict[str, Any]] = []
        self.selected_histories: set[int] = set()
        self.error = ""
        self.loading = False
        self.map_key = 0

    @property
    def coordinates(self) -> tuple[float, float]:
        return extract_coordinates(self.geo_data) or (0.0, 0.0)

    @property
    def show_map(self) -> bool:
        return extract_coordinates(self.geo_data) is not None

    def mount(self) -> None:
        self.fetch_user_geolocation()
        self.fetch_history()

    def _show(self, geo_data: dict[str, Any]) -> None:
        self.geo_data = geo_data
        self.map_key += 1

    def fetch_user_geolocation(self) -> None:
        self.loading = True
        self.error = ""
        try:
            body = self.api.get_geolocation()
        except (ApiError, httpx.HTTPError):
            self.error = SELF_LOOKUP_FAILED
            return
        finally:
            self.loading = False

        if body.get("success"):
            self._show(body["data"])

    def fetch_history(self) -> None:
        try:
            body = self.api.get_history()
        except (ApiError, httpx.HTTPError) as exc:
            logger.warning(f"Failed to fetch history: {exc}")
            return

        if body.get("success"):
            self.history = body["data"]
            # Drop selections for records that are gone.
            self.selected_histories &= {item["id"] for item in self.history}

    def search(self) -> bool:
        """Validate the search box and look the address up. Returns True on success."""
        self.error = ""
        ip = self.ip_input.strip()

        if not ip:
            self.error = "Please enter an IP address"
            return False
        if not is_valid_ip(ip):
            self.error = "Please enter a valid IP address"
            return False

        self.loading = True
        try:
            body = self.api.get_geolocation(ip)
        except ApiError as exc:
            self.error = exc.message or IP_LOOKUP_FAILED
            return False
        except httpx.HTTPError:
            self.error = IP_LOOKUP_FAILED
            return False
        finally:
            self.loading = False

        if not body.get("success"):
            return False

        self._show(body["data"])
        self.fetch_history()
        return True

    def clear(self) -> None:
        self.ip_input = ""
        self.error = ""
        self.selected_histories = set()
        self.fetch_user_geolocation()

    def select_history_item(self, item: dict[str, Any]) -> None:
        """Show a stored lookup again without calling the API."""
        self._show(item["geo_data"])
        self.ip_input = item["ip_address"]
        self.error = ""

    def toggle_selection(self, history_id: int) -> None:
        if history_id in self.selected_histories:
            self.selected_histories.discard(history_id)
        else:
            self.selected_histories.add(history_id)

    def toggle_select_all(self) -> None:
        all_ids = {item["id"] for item in self.history}
        if self.selected_histories == all_ids:
            self.selected_histories = set()
        else:
            self.selected_histories = all_ids

    def delete_selected(self, confirm: Callable[[int], bool]) -> int | None:
        """Delete the selected records once `confirm(count)` agrees.

        Returns the server's deleted count, or None when nothing was sent.
        """
        if not self.selected_histories:
            return None
        if not confirm(len(self.selected_histories)):
            return None

        try:
            body = self.api.delete_history(sorted(self.selected_histories))
        except (ApiError, httpx.HTTPError):
            self.error = DELETE_FAILED
            return None

        self.selected_histories = set()
        self.fetch_history()
        return body.get("deleted_count")
