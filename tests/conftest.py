import os
from types import SimpleNamespace

import pytest

# must be set before the app module is imported
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ["LOGOMAKER_CONFIG_FILE"] = "/nonexistent/config.py"
os.environ["LOGOMAKER_SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["LOGOMAKER_TESTING"] = "true"
os.environ["LOGOMAKER_MAIL_SUPPRESS_SEND"] = "true"
os.environ["LOGOMAKER_COOKIE_SECURE"] = "false"
os.environ["LOGOMAKER_BCRYPT_ROUNDS"] = "4"
os.environ["LOGOMAKER_SUPERUSER_EMAILS"] = '"boss@example.com; ops@example.com"'
os.environ["LOGOMAKER_JWT_ACCESS_TOKEN_SECRET"] = '"test-access-secret"'
os.environ["LOGOMAKER_STRIPE_SECRET_KEY"] = '"sk_test_123"'
os.environ["LOGOMAKER_STRIPE_WEBHOOK_SECRET"] = '"whsec_test"'
os.environ["LOGOMAKER_SITE_URL"] = '"https://logos.example.com"'
os.environ["LOGOMAKER_RESET_LINK_BASE"] = '"https://logos.example.com/reset"'

import app as app_module  # noqa: E402
from identity import IdentityStore  # noqa: E402


class FakeTable:
    """In-memory stand-in for the AppUsers DynamoDB table (boto3 Table API subset)."""

    def __init__(self):
        self.items = {}
        self.calls = []

    def _eval(self, cond, item):
        expr = cond.get_expression()
        op, values = expr["operator"], expr["values"]
        if op == "AND":
            return all(self._eval(v, item) for v in values)
        if op == "OR":
            return any(self._eval(v, item) for v in values)
        if op == "=":
            return item.get(values[0].name) == values[1]
        if op == "attribute_not_exists":
            return values[0].name not in item
        if op == "attribute_exists":
            return values[0].name in item
        raise NotImplementedError(op)

    def get_item(self, Key):
        self.calls.append(("get_item", Key))
        item = self.items.get(Key["id"])
        return {"Item": dict(item)} if item else {}

    def put_item(self, Item, ConditionExpression=None):
        self.calls.append(("put_item", Item))
        existing = self.items.get(Item["id"], {})
        if ConditionExpression is not None and not self._eval(ConditionExpression, existing):
            raise AssertionError("conditional check failed")
        self.items[Item["id"]] = dict(Item)
        return {}

    def query(self, IndexName, KeyConditionExpression, FilterExpression=None):
        self.calls.append(("query", IndexName))
        out = [dict(i) for i in self.items.values() if self._eval(KeyConditionExpression, i)]
        if FilterExpression is not None:
            out = [i for i in out if self._eval(FilterExpression, i)]
        return {"Items": out}

    def scan(self, FilterExpression=None, **kwargs):
        out = [dict(i) for i in self.items.values()
               if FilterExpression is None or self._eval(FilterExpression, i)]
        return {"Items": out}

    def update_item(self, Key, UpdateExpression, ExpressionAttributeNames,
                    ExpressionAttributeValues, ReturnValues=None):
        self.calls.append(("update_item", Key))
        item = self.items[Key["id"]]
        assert UpdateExpression.startswith("SET ")
        for part in UpdateExpression[4:].split(","):
            name, value = (p.strip() for p in part.split("="))
            item[ExpressionAttributeNames[name]] = ExpressionAttributeValues[value]
        return {"Attributes": dict(item)}


class FakeAppManager:
    def __init__(self):
        self.calls = []
        self.error = None
        self.response = {"success": True, "purchase": {"status": "verified"}}

    def verify_app_purchase(self, email, password, token, app_id, link_type,
                            subapp_id=None, order_number=None):
        self.calls.append({"email": email, "token": token, "appId": app_id,
                           "linkType": link_type, "subappId": subapp_id})
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def table():
    return FakeTable()


@pytest.fixture
def store(table):
    return IdentityStore(table=table, app_id="logo-generator")


@pytest.fixture
def app_manager():
    return FakeAppManager()


@pytest.fixture
def flask_app(store, app_manager):
    flask_app = app_module.app
    with flask_app.app_context():
        app_module.db.create_all()
    flask_app.extensions["identity_store"] = store
    flask_app.extensions["app_manager"] = app_manager
    yield flask_app
    flask_app.extensions.pop("identity_store", None)
    flask_app.extensions.pop("app_manager", None)
    with flask_app.app_context():
        app_module.db.session.remove()
        app_module.db.drop_all()


@pytest.fixture
def app_ctx(flask_app):
    """For tests that only touch the database (no test client requests)."""
    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture
def make_user(store):
    def _make(email="user@example.com", password="correct-horse", status="active"):
        return store.create_user(email, app_module._hash_password(password), status=status)
    return _make


@pytest.fixture
def login():
    def _login(client, item):
        token = app_module.create_access_token(item["id"], item["email"])
        client.set_cookie("access_token", token)
        return token
    return _login


@pytest.fixture
def account(flask_app):
    """Read a quota record back as plain values."""
    def _account(email):
        with flask_app.app_context():
            acct = app_module.get_credits(email)
            if acct is None:
                return None
            return SimpleNamespace(id=acct.id, email=acct.email, logos_created=acct.logos_created,
                                   logos_limit=acct.logos_limit, subscription_type=acct.subscription_type)
    return _account


@pytest.fixture
def seed_account(flask_app):
    def _seed(email, logos_created=0, logos_limit=5):
        with flask_app.app_context():
            acct = app_module.CreditAccount(email=email, logos_created=logos_created, logos_limit=logos_limit)
            app_module.db.session.add(acct)
            app_module.db.session.commit()
            return acct.id
    return _seed


class FakeOpenAI:
    def __init__(self):
        self.image_calls = []
        self.edit_calls = []
        self.chat_calls = []
        self.image_error = None
        self.chat_errors = []
        self.chat_answer = "Technology"
        self.b64 = "aW1hZ2UtYnl0ZXM="
        self.images = SimpleNamespace(generate=self._generate, edit=self._edit)
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat))

    def _image_response(self):
        return SimpleNamespace(created=1700000000,
                               data=[SimpleNamespace(b64_json=self.b64, revised_prompt="revised")])

    def _generate(self, **kwargs):
        self.image_calls.append(kwargs)
        if self.image_error:
            raise self.image_error
        return self._image_response()

    def _edit(self, **kwargs):
        self.edit_calls.append(kwargs)
        if self.image_error:
            raise self.image_error
        return self._image_response()

    def _chat(self, **kwargs):
        self.chat_calls.append(kwargs)
        if self.chat_errors:
            raise self.chat_errors.pop(0)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.chat_answer))])


@pytest.fixture
def fake_openai(monkeypatch):
    fake = FakeOpenAI()
    monkeypatch.setattr(app_module, "client", fake)
    monkeypatch.setattr(app_module.time, "sleep", lambda s: None)
    return fake
