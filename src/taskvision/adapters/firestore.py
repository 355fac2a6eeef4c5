"""Firestore REST adapter - HTTP client for task documents."""

import logging
import time
from datetime import date, datetime, timezone

import requests

from taskvision.config import Config, Tokens, load_config
from taskvision.core.recurrence import InvalidRule, RepeatException
from taskvision.core.tasks import Task, TaskInstance
from taskvision.ports.task_store import StoreError, TaskNotFound

logger = logging.getLogger(__name__)

FIRESTORE_BASE = "https://firestore.googleapis.com/v1/projects/{project}/databases/(default)/documents"
TOKEN_REFRESH_URL = "https://securetoken.googleapis.com/v1/token"
SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
COLLECTION = "tasks"


class AuthenticationError(StoreError):
    """Raised when authentication fails."""

    pass


# ============== Value Codec ==============


def encode_value(value) -> dict:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {"timestampValue": value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, (list, tuple)):
        if not value:
            return {"arrayValue": {}}
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot store {type(value).__name__} in Firestore")


def encode_fields(data: dict) -> dict:
    return {k: encode_value(v) for k, v in data.items()}


def decode_value(value: dict):
    """Decode a Firestore typed value. Timestamps stay as RFC 3339 strings."""
    kind, raw = next(iter(value.items()))
    match kind:
        case "nullValue":
            return None
        case "integerValue":
            return int(raw)
        case "arrayValue":
            return [decode_value(v) for v in raw.get("values", [])]
        case "mapValue":
            return decode_fields(raw.get("fields", {}))
        case _:
            # booleanValue, doubleValue, stringValue, timestampValue, referenceValue
            return raw


def decode_fields(fields: dict) -> dict:
    return {k: decode_value(v) for k, v in fields.items()}


def _field_filter(path: str, value) -> dict:
    return {
        "fieldFilter": {
            "field": {"fieldPath": path},
            "op": "EQUAL",
            "value": encode_value(value),
        }
    }


def _and_query(*filters: dict, limit: int | None = None) -> dict:
    query = {
        "from": [{"collectionId": COLLECTION}],
        "where": {"compositeFilter": {"op": "AND", "filters": list(filters)}},
    }
    if limit is not None:
        query["limit"] = limit
    return {"structuredQuery": query}


# ============== Adapter ==============


class FirestoreTaskStore:
    """
    Firestore REST adapter.

    Implements TaskStore protocol. Handles authentication, token refresh,
    and API calls. No business logic - just I/O.
    """

    def __init__(self, config: Config | None = None, tokens: Tokens | None = None):
        self.config = config or load_config()
        self.tokens = tokens or Tokens.load()
        self._session = requests.Session()
        self._base = FIRESTORE_BASE.format(project=self.config.firestore_project_id)

    def _ensure_valid_token(self) -> None:
        """Refresh token if expired or expiring soon."""
        if not self.tokens.id_token:
            raise AuthenticationError("No ID token. Run 'taskvision auth' first.")

        # Refresh if expiring within 5 minutes
        if self.tokens.expires_at and time.time() >= self.tokens.expires_at - 300:
            self._refresh_token()

    def _refresh_token(self) -> None:
        """Refresh the ID token."""
        if not self.tokens.refresh_token:
            raise AuthenticationError("No refresh token. Run 'taskvision auth' first.")

        try:
            resp = self._session.post(
                TOKEN_REFRESH_URL,
                params={"key": self.config.firebase_api_key},
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.tokens.refresh_token,
                },
            )
        except requests.RequestException as e:
            raise AuthenticationError(f"Token refresh failed: {e}") from e

        if resp.status_code != 200:
            raise AuthenticationError(f"Token refresh failed: {resp.text}")

        try:
            data = resp.json()
            self.tokens.id_token = data["id_token"]
            if "refresh_token" in data:
                self.tokens.refresh_token = data["refresh_token"]
            self.tokens.expires_at = int(time.time()) + int(data.get("expires_in", 3600))
        except (KeyError, TypeError, ValueError) as e:
            raise AuthenticationError(f"Unexpected token refresh response: {e}") from e

        try:
            self.tokens.save()
        except OSError as e:
            logger.warning(f"Could not save refreshed tokens: {e}")

    def _api_request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Make authenticated API request. Maps transport failures to StoreError."""
        self._ensure_valid_token()
        try:
            resp = self._session.request(
                method,
                url,
                headers={"Authorization": f"Bearer {self.tokens.id_token}"},
                **kwargs,
            )
        except requests.RequestException as e:
            raise StoreError(f"Firestore {method} failed: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthenticationError(f"Firestore rejected credentials: {resp.text}")
        return resp

    def _check(self, resp: requests.Response, action: str) -> None:
        if not resp.ok:
            raise StoreError(f"Firestore {action} failed ({resp.status_code}): {resp.text}")

    def _json(self, resp: requests.Response, action: str):
        try:
            return resp.json()
        except ValueError as e:
            raise StoreError(f"Firestore {action} returned malformed JSON: {e}") from e

    def _run_query(self, query: dict) -> list[tuple[str, dict]]:
        """Run a structured query. Returns (document id, fields) pairs."""
        resp = self._api_request("POST", f"{self._base}:runQuery", json=query)
        self._check(resp, "query")
        results = []
        try:
            for row in self._json(resp, "query"):
                doc = row.get("document")
                if not doc:
                    continue
                doc_id = doc["name"].rsplit("/", 1)[-1]
                results.append((doc_id, decode_fields(doc.get("fields", {}))))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Unexpected Firestore query response: {e}") from e
        return results

    def list_enabled_recurring_tasks(self, user_id: str) -> list[Task]:
        """Fetch the user's parent tasks whose recurrence is enabled."""
        rows = self._run_query(
            _and_query(
                _field_filter("userId", user_id),
                _field_filter("repeatSettings.enabled", True),
            )
        )
        tasks = []
        for doc_id, data in rows:
            try:
                tasks.append(Task.from_dict(data, doc_id))
            except InvalidRule as e:
                logger.warning(f"Ignoring task {doc_id} with invalid repeat settings: {e}")
        return tasks

    def create_instance(self, instance: TaskInstance) -> str:
        """Persist a new instance. Returns its id."""
        data = instance.to_dict()
        data["createdAt"] = datetime.now(timezone.utc)
        resp = self._api_request(
            "POST",
            f"{self._base}/{COLLECTION}",
            json={"fields": encode_fields(data)},
        )
        self._check(resp, "create")
        try:
            return self._json(resp, "create")["name"].rsplit("/", 1)[-1]
        except (KeyError, TypeError, AttributeError) as e:
            raise StoreError(f"Firestore create returned no document name: {e}") from e

    def update_parent_exceptions(
        self, parent_task_id: str, exceptions: tuple[RepeatException, ...]
    ) -> None:
        """Replace the exception list of a parent task's recurrence rule."""
        body = {
            "fields": {
                "repeatSettings": encode_value(
                    {"exceptions": [e.to_dict() for e in exceptions]}
                )
            }
        }
        resp = self._api_request(
            "PATCH",
            f"{self._base}/{COLLECTION}/{parent_task_id}",
            params={
                "updateMask.fieldPaths": "repeatSettings.exceptions",
                "currentDocument.exists": "true",
            },
            json=body,
        )
        if resp.status_code == 404:
            raise TaskNotFound(f"Task {parent_task_id} not found")
        self._check(resp, "update")

    def find_task_by_id(self, task_id: str) -> Task:
        """Fetch one task. Raises TaskNotFound if it does not exist."""
        resp = self._api_request("GET", f"{self._base}/{COLLECTION}/{task_id}")
        if resp.status_code == 404:
            raise TaskNotFound(f"Task {task_id} not found")
        self._check(resp, "get")
        try:
            fields = decode_fields(self._json(resp, "get").get("fields", {}))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StoreError(f"Unexpected Firestore document for {task_id}: {e}") from e
        return Task.from_dict(fields, task_id)

    def find_instance(self, parent_task_id: str, on: date) -> str | None:
        """Id of an existing instance of a parent on a date, if any."""
        rows = self._run_query(
            _and_query(
                _field_filter("parentTaskId", parent_task_id),
                _field_filter("date", on.isoformat()),
                limit=1,
            )
        )
        return rows[0][0] if rows else None


def authorize(email: str, password: str, config: Config | None = None) -> tuple[Tokens, str]:
    """
    Sign in with Firebase email/password and save the tokens.

    Returns (tokens, user id).
    """
    config = config or load_config()

    if not config.firebase_api_key:
        raise AuthenticationError("Missing FIREBASE_API_KEY. Add it to config/taskvision.conf")

    try:
        resp = requests.post(
            SIGN_IN_URL,
            params={"key": config.firebase_api_key},
            json={"email": email, "password": password, "returnSecureToken": True},
        )
    except requests.RequestException as e:
        raise AuthenticationError(f"Sign-in failed: {e}") from e

    if resp.status_code != 200:
        raise AuthenticationError(f"Sign-in failed: {resp.text}")

    data = resp.json()
    tokens = Tokens(
        id_token=data["idToken"],
        refresh_token=data.get("refreshToken", ""),
        expires_at=int(time.time()) + int(data.get("expiresIn", 3600)),
    )
    tokens.save()
    return tokens, data.get("localId", "")
