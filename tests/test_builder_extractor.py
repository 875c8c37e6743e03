from pathlib import Path

from api_inventory.parser.aggregate import extract_all_endpoints
from api_inventory.parser.builder import BuilderExtractor
from api_inventory.parser.project import Project

FIXTURES = Path(__file__).parent / "fixtures"
EXPRESS = FIXTURES / "express"


def _express_files():
    return [
        EXPRESS / "app.js",
        EXPRESS / "routes" / "users.js",
        EXPRESS / "routes" / "legacy.js",
        EXPRESS / "middleware.js",
    ]


def _by_key(result):
    return {ep.key: ep for ep in result.endpoints}


class TestExpressFixture:
    def test_endpoint_keys(self):
        result = extract_all_endpoints(_express_files(), framework="builder")
        assert [ep.key for ep in result.endpoints] == [
            "GET /health",
            "GET /api/users",
            "POST /api/users",
            "GET /api/users/:id",
            "PUT /api/users/:id",
            "DELETE /api/users/:id",
            "GET /legacy/ping",
        ]

    def test_validation_middleware_on_get_is_query(self):
        ep = _by_key(extract_all_endpoints(_express_files(), framework="builder"))["GET /api/users"]
        assert ep.parameters.body is None
        assert [(p.name, p.required, p.param_type) for p in ep.parameters.query] == [
            ("page", False, "number"),
            ("q", True, "string"),
        ]

    def test_validation_middleware_on_post_is_body(self):
        ep = _by_key(extract_all_endpoints(_express_files(), framework="builder"))["POST /api/users"]
        assert ep.parameters.query == []
        assert ep.parameters.body.to_dict() == {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "email": {"type": "string"},
                "age": {"type": "number"},
            },
            "required": ["name", "email"],
        }

    def test_route_chain_verbs(self):
        endpoints = _by_key(extract_all_endpoints(_express_files(), framework="builder"))
        assert endpoints["PUT /api/users/:id"].parameters.body is not None
        assert endpoints["DELETE /api/users/:id"].parameters.body is None
        assert [p.name for p in endpoints["GET /api/users/:id"].parameters.path] == ["id"]

    def test_source_file_is_router_file(self):
        ep = _by_key(extract_all_endpoints(_express_files(), framework="builder"))["GET /legacy/ping"]
        assert ep.source_file == str((EXPRESS / "routes" / "legacy.js").resolve())


class TestBuilderShapes:
    def test_imported_router_mounted_twice(self, write_files):
        paths = write_files(
            {
                "b.ts": "import { Router } from 'express';\nconst b = Router();\nb.get('/ping', (req, res) => res.end());\nexport default b;\n",
                "f1.ts": "import express from 'express';\nimport b from './b';\nconst a = express();\na.use('/v1', b);\n",
                "f2.ts": "import express from 'express';\nimport b from './b';\nconst app = express();\napp.use('/legacy', b);\n",
            }
        )
        keys = {ep.key for ep in extract_all_endpoints(paths, framework="builder").endpoints}
        assert keys == {"GET /v1/ping", "GET /legacy/ping"}

    def test_use_with_middleware_before_router(self, write_files):
        paths = write_files(
            {
                "app.js": "const app = express();\nconst admin = express.Router();\n"
                "admin.get('/stats', h);\napp.use('/admin', requireAdmin, admin);\n",
            }
        )
        keys = [ep.key for ep in extract_all_endpoints(paths, framework="builder").endpoints]
        assert keys == ["GET /admin/stats"]

    def test_http_client_calls_are_not_routes(self, write_files):
        (path,) = write_files({"client.js": "axios.get('/users');\nreq.get('Content-Type');\n"})
        assert extract_all_endpoints([path], framework="builder").endpoints == []

    def test_client_instances_outside_express_modules(self, write_files):
        (path,) = write_files(
            {"api.js": "const api = axios.create({ baseURL: '/v1' });\nexport const load = () => api.get('/users');\n"}
        )
        assert extract_all_endpoints([path], framework="builder").endpoints == []

    def test_unknown_receiver_in_express_module(self, write_files):
        (path,) = write_files({"server.js": "const express = require('express');\nserver.get('/ready', h);\n"})
        keys = [ep.key for ep in extract_all_endpoints([path], framework="builder").endpoints]
        assert keys == ["GET /ready"]

    def test_untyped_app_parameter(self, write_files):
        (path,) = write_files({"routes.js": "module.exports = (app) => {\n  app.post('/login', h);\n};\n"})
        keys = [ep.key for ep in extract_all_endpoints([path], framework="builder").endpoints]
        assert keys == ["POST /login"]

    def test_mount_records(self, write_files):
        (path,) = write_files({"app.js": "const app = express();\napp.use(cors());\napp.use('/api', api);\n"})
        project = Project()
        facts = BuilderExtractor().extract_file(project.provider.parse(path), project)
        assert [(m.parent, m.prefix, m.child) for m in facts.mounts] == [("app", "/api", "api")]
