# identity.py
"""AppUsers identity records (DynamoDB) and the App Manager purchase verification API.

Identity lives outside the quota database: one item per user keyed by ``id``,
looked up by e-mail through the ``email-index`` secondary index and scoped to
this app through the ``AppId`` attribute.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import boto3
import requests
from boto3.dynamodb.conditions import Attr, Key

logger = logging.getLogger(__name__)

ALLOWED_STATUSES = {"active", "pending"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _to_dynamo(value):
    # DynamoDB rejects floats; round-trip through JSON to get Decimals
    return json.loads(json.dumps(value), parse_float=Decimal)


def user_status(item: dict) -> str | None:
    # older records use lowercase "status"
    return item.get("Status") or item.get("status")


class IdentityStore:
    def __init__(self, table=None, table_name="AppUsers", app_id=None,
                 email_index="email-index", region_name=None):
        if table is None:
            table = boto3.resource("dynamodb", region_name=region_name).Table(table_name)
        self.table = table
        self.app_id = app_id
        self.email_index = email_index

    def get_user(self, user_id):
        resp = self.table.get_item(Key={"id": str(user_id)})
        return resp.get("Item")

    def get_user_by_email(self, email: str):
        email = (email or "").strip().lower()
        if not email:
            return None
        kwargs = {
            "IndexName": self.email_index,
            "KeyConditionExpression": Key("email").eq(email),
        }
        if self.app_id:
            kwargs["FilterExpression"] = Attr("AppId").eq(self.app_id) | Attr("AppId").not_exists()
        resp = self.table.query(**kwargs)
        items = resp.get("Items") or []
        return items[0] if items else None

    def create_user(self, email, password_hash, status="active",
                    app_manager_data=None, sub_app_id=None):
        now = _now_iso()
        item = {
            "id": str(uuid.uuid4()),
            "email": email.strip().lower(),
            "password": password_hash,
            "Status": status,
            "createdAt": now,
            "lastLogin": now,
        }
        if self.app_id:
            item["AppId"] = self.app_id
        if app_manager_data is not None:
            item["appManagerData"] = _to_dynamo(app_manager_data)
        if sub_app_id:
            item["subAppId"] = str(sub_app_id)
        self.table.put_item(Item=item, ConditionExpression=Attr("id").not_exists())
        logger.info("Created identity record %s for %s", item["id"], item["email"])
        return item

    def update_user(self, user_id, **fields):
        """SET the given attributes and return the full updated item."""
        if not fields:
            return self.get_user(user_id)
        names, values, sets = {}, {}, []
        for i, (attr, value) in enumerate(fields.items()):
            names[f"#f{i}"] = attr
            values[f":v{i}"] = _to_dynamo(value)
            sets.append(f"#f{i} = :v{i}")
        resp = self.table.update_item(
            Key={"id": str(user_id)},
            UpdateExpression="SET " + ", ".join(sets),
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        )
        return resp.get("Attributes")

    def upsert_registered_user(self, email, password_hash, app_manager_data=None, sub_app_id=None):
        existing = self.get_user_by_email(email)
        if not existing:
            return self.create_user(email, password_hash, status="active",
                                    app_manager_data=app_manager_data, sub_app_id=sub_app_id)

        fields = {
            "password": password_hash,
            "lastLogin": _now_iso(),
            "Status": "active",
        }
        if app_manager_data is not None:
            fields["appManagerData"] = app_manager_data
        if sub_app_id:
            fields["subAppId"] = str(sub_app_id)
        logger.info("Updating identity record %s for %s", existing["id"], email)
        return self.update_user(existing["id"], **fields)

    def record_login(self, user_id):
        return self.update_user(user_id, lastLogin=_now_iso())

    def set_password(self, user_id, password_hash):
        return self.update_user(user_id, password=password_hash, passwordUpdatedAt=_now_iso())

    def set_status(self, user_id, status):
        return self.update_user(user_id, Status=status)


class AppManagerError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class AppManagerClient:
    """Thin client for the App Manager lambda that verifies app purchases."""

    def __init__(self, endpoint, api_key, timeout=15, session=None):
        self.endpoint = (endpoint or "").rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def verify_app_purchase(self, email, password, token, app_id, link_type,
                            subapp_id=None, order_number=None) -> dict:
        if not self.endpoint or not self.api_key:
            raise AppManagerError("App Manager API configuration missing")

        body = {
            "email": email,
            "password": password,
            "token": token,
            "appId": app_id,
            "linkType": link_type,
        }
        if subapp_id:
            body["subappId"] = subapp_id
        if order_number:
            body["orderNumber"] = order_number

        logger.info("Verifying app purchase for %s (appId=%s, linkType=%s)", email, app_id, link_type)
        try:
            resp = self.session.post(
                f"{self.endpoint}/app-manager",
                params={"action": "verifyAppPurchase"},
                json=body,
                headers={"X-Api-Key": self.api_key},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AppManagerError(f"App Manager API unreachable: {e}") from e

        if not resp.ok:
            try:
                err = (resp.json() or {}).get("error")
            except ValueError:
                err = None
            raise AppManagerError(err or f"App Manager API error: {resp.status_code}", resp.status_code)

        try:
            return resp.json() or {}
        except ValueError:
            return {}
