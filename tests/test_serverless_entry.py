import importlib.util
import os
import sys

from flask import Flask

from db_config import mongo

INDEX = os.path.join(os.path.dirname(__file__), '..', 'api', 'index.py')


def test_entry_exports_wsgi_app(monkeypatch):
    monkeypatch.setattr(sys, "path", list(sys.path))
    monkeypatch.setattr(mongo, "cx", mongo.cx)
    monkeypatch.setattr(mongo, "db", mongo.db)

    spec = importlib.util.spec_from_file_location("serverless_index", INDEX)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    assert isinstance(module.app, Flask)
    assert not hasattr(module, "handler")

    response = module.app.test_client().get('/')
    assert response.status_code == 200
    assert response.get_json() == {"message": "Welcome to TeachnGrow"}
