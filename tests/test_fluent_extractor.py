from pathlib import Path

from api_inventory.parser.aggregate import extract_all_endpoints

FIXTURES = Path(__file__).parent / "fixtures"
HONO = FIXTURES / "hono" / "src"


def _hono_files():
    return [
        HONO / "index.ts",
        HONO / "routes" / "users.ts",
        HONO / "routes" / "widgets.ts",
        HONO / "routes" / "widgets.routes.ts",
        HONO / "schemas.ts",
    ]


def _by_key(result):
    return {ep.key: ep for ep in result.endpoints}


class TestHonoFixture:
    def test_endpoint_keys(self):
        endpoints = _by_key(extract_all_endpoints(_hono_files(), framework="fluent"))
        assert set(endpoints) == {
            "GET /api/health",
            "GET /api/inline/hello",
            "GET /api/users",
            "POST /api/users",
            "GET /api/users/:id",
            "PUT /api/users/:id",
            "PATCH /api/users/:id",
            "GET /api/v1/widgets",
            "GET /api/v1/widgets/{id}",
            "GET /api/v2/widgets",
            "GET /api/v2/widgets/{id}",
        }

    def test_query_validator(self):
        ep = _by_key(extract_all_endpoints(_hono_files(), framework="fluent"))["GET /api/users"]
        assert [(p.name, p.required, p.param_type) for p in ep.parameters.query] == [
            ("limit", False, "number"),
            ("cursor", False, "string"),
        ]

    def test_json_validator_with_imported_schema(self):
        ep = _by_key(extract_all_endpoints(_hono_files(), framework="fluent"))["POST /api/users"]
        body = ep.parameters.body.to_dict()
        assert body["properties"]["name"] == {"type": "string", "example": "Ada"}
        assert body["properties"]["tags"] == {"type": "array", "items": {"type": "string"}}
        assert body["required"] == ["name", "role", "tags"]
        assert ep.source_file == str((HONO / "routes" / "users.ts").resolve())

    def test_on_with_partial_schema(self):
        endpoints = _by_key(extract_all_endpoints(_hono_files(), framework="fluent"))
        for key in ("PUT /api/users/:id", "PATCH /api/users/:id"):
            body = endpoints[key].parameters.body.to_dict()
            assert set(body["properties"]) == {"name", "role", "tags"}
            assert "required" not in body
            assert [p.name for p in endpoints[key].parameters.path] == ["id"]

    def test_openapi_route_definitions_across_files(self):
        endpoints = _by_key(extract_all_endpoints(_hono_files(), framework="fluent"))
        listing = endpoints["GET /api/v1/widgets"]
        assert listing.description == "List widgets"
        assert [(p.name, p.required) for p in listing.parameters.query] == [("color", False)]
        single = endpoints["GET /api/v2/widgets/{id}"]
        assert [(p.name, p.location, p.required) for p in single.parameters.path] == [("id", "path", True)]


class TestFluentShapes:
    def test_base_path_and_validator_scenario(self, write_files):
        (path,) = write_files(
            {
                "app.ts": """
                import { Hono } from 'hono';
                import { validator } from 'hono/validator';
                import { object, string } from 'zod';

                const app = new Hono().basePath('/api');
                app.get('/health', (c) => c.text('ok'));
                app.post('/items', validator('json', object({ name: string() })), (c) => c.json({}));
                export default app;
                """
            }
        )
        endpoints = _by_key(extract_all_endpoints([path], framework="fluent"))
        assert list(endpoints) == ["GET /api/health", "POST /api/items"]
        assert endpoints["GET /api/health"].parameters.body is None
        assert endpoints["POST /api/items"].parameters.body.to_dict() == {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        }

    def test_chained_declaration(self, write_files):
        (path,) = write_files(
            {
                "app.ts": """
                const app = new Hono()
                  .basePath('/api')
                  .get('/a', (c) => c.text('a'))
                  .delete('/b', (c) => c.text('b'));
                """
            }
        )
        keys = [ep.key for ep in extract_all_endpoints([path], framework="fluent").endpoints]
        assert keys == ["GET /api/a", "DELETE /api/b"]

    def test_route_definition_via_variable_matches_inline(self, write_files):
        indirect, inline = write_files(
            {
                "indirect.ts": """
                const app = new OpenAPIHono();
                const definition = { method: 'get', path: '/widgets' };
                app.openapi(definition, (c) => c.json([]));
                """,
                "inline.ts": """
                const app = new OpenAPIHono();
                app.openapi(createRoute({ method: 'get', path: '/widgets' }), (c) => c.json([]));
                """,
            }
        )
        a = extract_all_endpoints([indirect], framework="fluent").endpoints
        b = extract_all_endpoints([inline], framework="fluent").endpoints
        assert len(a) == len(b) == 1
        assert a[0].model_dump(exclude={"source_file"}) == b[0].model_dump(exclude={"source_file"})

    def test_cross_file_remount(self, write_files):
        paths = write_files(
            {
                "b.ts": "const b = new Hono();\nb.get('/ping', (c) => c.text('pong'));\nexport default b;\n",
                "f1.ts": "import b from './b';\nconst a = new Hono();\na.route('/v1', b);\n",
                "f2.ts": "import b from './b';\nconst c = new Hono();\nc.route('/legacy', b);\n",
            }
        )
        keys = {ep.key for ep in extract_all_endpoints(paths, framework="fluent").endpoints}
        assert keys == {"GET /v1/ping", "GET /legacy/ping"}

    def test_imported_receiver_must_be_a_hono_router(self, write_files):
        paths = write_files(
            {
                "hono-app.ts": "export const api = new Hono();\n",
                "other-app.js": "const app = express();\nmodule.exports = app;\n",
                "routes.ts": "import { api } from './hono-app';\nimport app from './other-app';\n"
                "api.get('/status', (c) => c.text('ok'));\napp.get('/health', h);\n",
            }
        )
        keys = [ep.key for ep in extract_all_endpoints(paths, framework="fluent").endpoints]
        assert keys == ["GET /status"]

    def test_typed_router_parameter(self, write_files):
        (path,) = write_files(
            {
                "register.ts": """
                export function register(app: Hono) {
                  app.get('/status', (c) => c.text('ok'));
                }
                """
            }
        )
        keys = [ep.key for ep in extract_all_endpoints([path], framework="fluent").endpoints]
        assert keys == ["GET /status"]

    def test_unknown_receivers_ignored(self, write_files):
        (path,) = write_files(
            {
                "client.ts": """
                const res = await fetchClient.get('/users');
                const value = map.get('key');
                """
            }
        )
        assert extract_all_endpoints([path], framework="fluent").endpoints == []
