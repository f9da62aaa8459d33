from __future__ import annotations

import argparse
import html
import logging
import mimetypes
from dataclasses import dataclass, field
from email.parser import BytesParser
from email.policy import default
from http import HTTPStatus
from http.cookies import SimpleCookie
from pathlib import Path
from typing import Any, Callable, Iterable, Optional
from urllib.parse import parse_qs, quote, urlencode, urlparse

from backend.fleet.app import SAMPLE_IMPORT_ROWS, FleetDashboardApp
from backend.fleet.auth import EDITOR_ROLES
from backend.fleet.complaints import ComplaintView
from backend.fleet.config import DashboardConfig
from backend.fleet.models import ComplaintStatus, DepotSummary, Document, DocumentType, User, UserRole, Vehicle
from backend.fleet.odometer import PERIOD_LABELS, PERIOD_WINDOWS, fleet_totals

SESSION_COOKIE = "session_id"
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes


@dataclass
class Request:
    method: str
    target: str
    headers: dict[str, str]
    body: bytes = b""

    def __post_init__(self) -> None:
        parsed = urlparse(self.target)
        self.path = parsed.path or "/"
        self.query = parse_qs(parsed.query)
        self.form: dict[str, list[str]] = {}
        self.files: dict[str, list[UploadedFile]] = {}
        if self.method in {"POST", "PUT"}:
            content_type = self.headers.get("Content-Type", "")
            if "application/x-www-form-urlencoded" in content_type:
                self.form = parse_qs(self.body.decode("utf-8"))
            elif "multipart/form-data" in content_type:
                self._parse_multipart(content_type)
        cookie_header = self.headers.get("Cookie", "")
        cookie = SimpleCookie(cookie_header)
        self.cookies = {key: morsel.value for key, morsel in cookie.items()}

    def query_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query.get(name)
        return values[0] if values else default

    def form_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.form.get(name)
        return values[0] if values else default

    def file_values(self, name: str) -> list[UploadedFile]:
        return self.files.get(name, [])

    def _parse_multipart(self, content_type: str) -> None:
        message = BytesParser(policy=default).parsebytes(
            f"Content-Type: {content_type}\r\n\r\n".encode("utf-8") + self.body
        )
        for part in message.iter_parts():
            if part.get_content_disposition() != "form-data":
                continue
            name = part.get_param("name", header="Content-Disposition")
            if not name:
                continue
            filename = part.get_param("filename", header="Content-Disposition")
            payload = part.get_payload(decode=True)
            if filename:
                upload = UploadedFile(
                    filename=filename,
                    content_type=part.get_content_type(),
                    data=payload,
                )
                self.files.setdefault(name, []).append(upload)
            else:
                charset = part.get_content_charset("utf-8") or "utf-8"
                self.form.setdefault(name, []).append(payload.decode(charset))

    def cookie(self, name: str) -> Optional[str]:
        return self.cookies.get(name)


@dataclass
class Response:
    status: HTTPStatus = HTTPStatus.OK
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes | str = ""

    def set_cookie(self, name: str, value: str, *, path: str = "/", max_age: Optional[int] = None) -> None:
        cookie = SimpleCookie()
        cookie[name] = value
        cookie[name]["path"] = path
        cookie[name]["httponly"] = True
        if max_age is not None:
            cookie[name]["max-age"] = str(max_age)
        header_value = cookie.output(header="")
        self.headers.append(("Set-Cookie", header_value.strip()))

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))


class FleetDashboardWebApp:
    def __init__(self, config: DashboardConfig) -> None:
        self.config = config
        self.service = FleetDashboardApp.from_config(config)
        if config.seed_defaults:
            self.service.seed_defaults()
        self.flash_messages: dict[str, list[tuple[str, str]]] = {}
        self.static_dir = Path(__file__).parent / "static"

    # Public API -----------------------------------------------------------------
    def wsgi_app(self, environ: dict[str, Any], start_response: Callable) -> Iterable[bytes]:
        method = environ["REQUEST_METHOD"]
        target = environ.get("RAW_URI") or environ.get("PATH_INFO", "/")
        if environ.get("QUERY_STRING") and "?" not in target:
            target = f"{target}?{environ['QUERY_STRING']}"
        length = int(environ.get("CONTENT_LENGTH") or 0)
        body = environ["wsgi.input"].read(length) if length else b""
        headers = {key: value for key, value in environ.items() if key.startswith("HTTP_")}
        if "CONTENT_TYPE" in environ:
            headers["Content-Type"] = environ["CONTENT_TYPE"]
        if "HTTP_COOKIE" in environ:
            headers["Cookie"] = environ["HTTP_COOKIE"]
        request = Request(method=method, target=target, headers=headers, body=body)
        response = self.handle(request)
        start_response(f"{response.status.value} {response.status.phrase}", response.headers)
        payload = response.body if isinstance(response.body, bytes) else response.body.encode("utf-8")
        return [payload]

    __call__ = wsgi_app

    def handle(self, request: Request) -> Response:
        if request.method == "GET" and request.path.startswith("/static/"):
            return self._serve_static(request.path.split("/", 2)[-1])

        route = self._match_route(request)
        if not route:
            return self._not_found()
        handler, params = route
        response = handler(request, **params)
        if not any(name.lower() == "content-type" for name, _ in response.headers):
            response.add_header("Content-Type", "text/html; charset=utf-8")
        if not (300 <= response.status.value < 400) and isinstance(response.body, str):
            messages = self._consume_messages(request)
            if messages:
                response.body = response.body.replace("<!--FLASH-->", self._render_messages(messages))
            else:
                response.body = response.body.replace("<!--FLASH-->", "")
        return response

    def run(self, host: str = "127.0.0.1", port: int = 8000) -> None:
        from wsgiref.simple_server import make_server

        with make_server(host, port, self.wsgi_app) as httpd:
            _logger.info("Serving fleet dashboard on http://%s:%s", host, port)
            httpd.serve_forever()

    # Routing --------------------------------------------------------------------
    def _match_route(self, request: Request) -> Optional[tuple[Callable, dict[str, Any]]]:
        simple_routes: dict[tuple[str, str], Callable[[Request], Response]] = {
            ("GET", "/"): self._home,
            ("GET", "/login"): self._login_get,
            ("POST", "/login"): self._login_post,
            ("GET", "/logout"): self._logout,
            ("POST", "/vehicles"): self._vehicle_add,
            ("POST", "/vehicles/import"): self._vehicle_import,
            ("GET", "/odometer"): self._odometer_get,
            ("POST", "/odometer"): self._odometer_post,
            ("GET", "/odometer/export"): self._odometer_export,
            ("GET", "/complaints"): self._complaints_get,
            ("POST", "/complaints"): self._complaints_post,
            ("GET", "/sop"): self._documents_get,
            ("POST", "/sop"): self._documents_post,
        }
        handler = simple_routes.get((request.method, request.path))
        if handler:
            return handler, {}

        parts = request.path.strip("/").split("/")
        if parts[0] == "complaints" and len(parts) == 3 and parts[2] == "clear" and request.method == "POST":
            return self._complaint_clear, {"complaint_id": parts[1]}
        if parts[0] == "documents" and len(parts) == 2 and request.method == "GET":
            return self._document_download, {"document_id": parts[1]}
        return None

    # Session helpers ------------------------------------------------------------
    def _current_user(self, request: Request) -> Optional[User]:
        token = request.cookie(SESSION_COOKIE)
        if not token:
            return None
        return self.service.auth.get_user_for_token(token)

    def _flash(self, request: Request, category: str, message: str, *, token: Optional[str] = None) -> None:
        key = token or request.cookie(SESSION_COOKIE) or "__anon__"
        self.flash_messages.setdefault(key, []).append((category, message))

    def _consume_messages(self, request: Request) -> list[tuple[str, str]]:
        key = request.cookie(SESSION_COOKIE) or "__anon__"
        return self.flash_messages.pop(key, [])

    # Route handlers -------------------------------------------------------------
    def _login_get(self, request: Request) -> Response:
        return self._page("Sign in", None, self._render_login())

    def _login_post(self, request: Request) -> Response:
        username = (request.form_value("username") or "").strip()
        password = request.form_value("password") or ""
        token = self.service.auth.authenticate(username, password)
        if token is None:
            self._flash(request, "error", "Invalid credentials. Please try again.")
            return self._page("Sign in", None, self._render_login(username=username))
        response = self._redirect("/")
        response.set_cookie(SESSION_COOKIE, token.token, path="/")
        self._flash(request, "success", "Signed in successfully.", token=token.token)
        return response

    def _logout(self, request: Request) -> Response:
        response = self._redirect("/login")
        token = request.cookie(SESSION_COOKIE)
        if token:
            self.service.auth.logout(token)
            self.flash_messages.pop(token, None)
            response.set_cookie(SESSION_COOKIE, "", path="/", max_age=0)
        self.flash_messages.setdefault("__anon__", []).append(("info", "Signed out."))
        return response

    def _home(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        vehicles = self.service.list_vehicles()
        return self._page("Fleet", user, self._render_home(user, vehicles))

    def _vehicle_add(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        attributes = {
            key: (request.form_value(key) or "").strip()
            for key in ("chassis", "reg", "depot", "motor", "model", "colour", "seating", "motor_kw", "dispatch_date")
        }
        try:
            vehicle = self.service.add_vehicle(requester=user, **attributes)
        except PermissionError:
            return self._forbidden()
        except ValueError as exc:
            self._flash(request, "error", str(exc))
            return self._redirect("/")
        self._flash(request, "success", f"Vehicle {vehicle.chassis} added.")
        return self._redirect("/")

    def _vehicle_import(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        try:
            result = self.service.bulk_import(requester=user, rows=SAMPLE_IMPORT_ROWS)
        except PermissionError:
            return self._forbidden()
        self._flash(request, "success" if result.added else "error", result.message)
        return self._redirect("/")

    def _odometer_get(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        period = request.query_value("period", "all") or "all"
        if period not in PERIOD_WINDOWS:
            self._flash(request, "error", "Unknown time period; showing all readings.")
            period = "all"
        summaries = self.service.odometer_summary(period)
        vehicles = self.service.list_vehicles() if user.role in EDITOR_ROLES else []
        return self._page("Odometer summary", user, self._render_odometer(user, period, summaries, vehicles))

    def _odometer_post(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        try:
            reading = self.service.add_reading(
                requester=user,
                chassis=request.form_value("chassis") or "",
                value=request.form_value("value") or "",
                reading_date=request.form_value("date") or "",
            )
        except PermissionError:
            return self._forbidden()
        except (ValueError, LookupError) as exc:
            self._flash(request, "error", str(exc))
            return self._redirect("/odometer")
        self._flash(request, "success", f"Recorded {_format_km(reading.value)}.")
        return self._redirect("/odometer")

    def _odometer_export(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        period = request.query_value("period", "all") or "all"
        if period not in PERIOD_WINDOWS:
            return self._not_found()
        filename, payload = self.service.export_odometer_summary(requester=user, period=period)
        return Response(
            headers=[
                ("Content-Type", XLSX_CONTENT_TYPE),
                ("Content-Disposition", f'attachment; filename="{filename}"'),
            ],
            body=payload,
        )

    def _complaints_get(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        status_value = request.query_value("status", "all") or "all"
        try:
            status = None if status_value == "all" else ComplaintStatus(status_value)
        except ValueError:
            status, status_value = None, "all"
        complaints = self.service.list_complaints(status=status)
        counts = self.service.complaints.complaint_counts()
        vehicles = self.service.list_vehicles() if user.role in EDITOR_ROLES else []
        content = self._render_complaints(user, status_value, complaints, counts, vehicles)
        return self._page("Complaints", user, content)

    def _complaints_post(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        try:
            self.service.add_complaint(
                requester=user,
                chassis=request.form_value("chassis") or "",
                text=request.form_value("text") or "",
            )
        except PermissionError:
            return self._forbidden()
        except (ValueError, LookupError) as exc:
            self._flash(request, "error", str(exc))
            return self._redirect("/complaints")
        self._flash(request, "success", "Complaint logged.")
        return self._redirect("/complaints")

    def _complaint_clear(self, request: Request, *, complaint_id: str) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        try:
            complaint_key = int(complaint_id)
        except ValueError:
            return self._not_found()
        try:
            self.service.clear_complaint(requester=user, complaint_id=complaint_key)
        except PermissionError:
            return self._forbidden()
        except LookupError:
            return self._not_found()
        except ValueError as exc:
            self._flash(request, "error", str(exc))
            return self._redirect("/complaints")
        self._flash(request, "success", "Complaint cleared.")
        return self._redirect("/complaints")

    def _documents_get(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        chassis = (request.query_value("chassis") or "").strip()
        try:
            document_type = DocumentType(request.query_value("type", "sop") or "sop")
        except ValueError:
            document_type = DocumentType.SOP
        vehicles = self.service.list_vehicles()
        documents: list[Document] = []
        if chassis:
            try:
                documents = self.service.list_documents(document_type, chassis)
            except LookupError:
                self._flash(request, "error", "Vehicle not found.")
                chassis = ""
        content = self._render_documents(user, document_type, chassis, vehicles, documents)
        return self._page("SOP for maintenance", user, content)

    def _documents_post(self, request: Request) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        chassis = (request.form_value("chassis") or "").strip()
        type_value = request.form_value("type", "sop") or "sop"
        location = "/sop?" + urlencode({"chassis": chassis, "type": type_value})
        uploads = request.file_values("file")
        try:
            if not uploads:
                raise ValueError("A file is required.")
            upload = uploads[0]
            self.service.upload_document(
                requester=user,
                chassis=chassis,
                document_type=DocumentType(type_value),
                filename=upload.filename,
                data=upload.data,
                content_type=upload.content_type,
            )
        except PermissionError:
            return self._forbidden()
        except (ValueError, LookupError) as exc:
            self._flash(request, "error", str(exc))
            return self._redirect(location)
        self._flash(request, "success", f"Uploaded {Path(upload.filename).name}.")
        return self._redirect(location)

    def _document_download(self, request: Request, *, document_id: str) -> Response:
        user = self._current_user(request)
        if not user:
            return self._redirect("/login")
        try:
            stored = self.service.open_document(int(document_id))
        except (ValueError, LookupError):
            return self._not_found()
        document = stored.document
        return Response(
            headers=[
                ("Content-Type", document.content_type),
                ("Content-Disposition", f"attachment; filename*=UTF-8''{quote(document.filename)}"),
            ],
            body=stored.path.read_bytes(),
        )

    # Utility responses ----------------------------------------------------------
    def _page(self, title: str, user: Optional[User], content: str) -> Response:
        nav = self._nav_links(user)
        badge = (
            f'<span class="user-badge">{html.escape(user.username)} ({user.role.value})</span>' if user else ""
        )
        body = f"""
        <!doctype html>
        <html lang=\"en\">
          <head>
            <meta charset=\"utf-8\" />
            <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
            <title>{html.escape(title)} - EV Fleet Dashboard</title>
            <link rel=\"stylesheet\" href=\"/static/styles.css\" />
          </head>
          <body>
            <header class=\"top-bar\">
              <div class=\"brand\">EV Fleet Dashboard</div>
              <nav class=\"nav-links\">{nav}</nav>
              {badge}
            </header>
            <main class=\"content\">
              <!--FLASH-->
              {content}
            </main>
          </body>
        </html>
        """
        return Response(body=body)

    def _redirect(self, location: str) -> Response:
        response = Response(status=HTTPStatus.SEE_OTHER)
        response.add_header("Location", location)
        response.body = f"<html><body>Redirecting to <a href=\"{html.escape(location)}\">{html.escape(location)}</a></body></html>"
        return response

    def _not_found(self) -> Response:
        body = "<html><body><h1>404 Not Found</h1></body></html>"
        return Response(status=HTTPStatus.NOT_FOUND, headers=[("Content-Type", "text/html; charset=utf-8")], body=body)

    def _forbidden(self) -> Response:
        body = "<html><body><h1>403 Forbidden</h1></body></html>"
        return Response(status=HTTPStatus.FORBIDDEN, headers=[("Content-Type", "text/html; charset=utf-8")], body=body)

    def _serve_static(self, filename: str) -> Response:
        static_root = self.static_dir.resolve()
        path = (self.static_dir / filename).resolve()
        try:
            path.relative_to(static_root)
        except ValueError:
            return self._not_found()
        if not path.exists() or not path.is_file():
            return self._not_found()
        content_type, _ = mimetypes.guess_type(str(path))
        content_type = content_type or "application/octet-stream"
        if content_type.startswith("text/"):
            return Response(headers=[("Content-Type", f"{content_type}; charset=utf-8")], body=path.read_text(encoding="utf-8"))
        return Response(headers=[("Content-Type", content_type)], body=path.read_bytes())

    # Rendering helpers ----------------------------------------------------------
    def _nav_links(self, user: Optional[User]) -> str:
        if not user:
            return '<a href="/login">Sign in</a>'
        links = [
            '<a href="/">Fleet</a>',
            '<a href="/odometer">Odometer</a>',
            '<a href="/complaints">Complaints</a>',
            '<a href="/sop">SOP</a>',
            '<a href="/logout">Sign out</a>',
        ]
        return "".join(links)

    def _render_messages(self, messages: Iterable[tuple[str, str]]) -> str:
        items = [f'<li class="flash {html.escape(cat)}">{html.escape(msg)}</li>' for cat, msg in messages]
        if not items:
            return ""
        return '<ul class="flash-messages">' + "".join(items) + "</ul>"

    def _render_login(self, *, username: str = "") -> str:
        return f"""
        <section class=\"card narrow\">
          <h1>Sign in</h1>
          <form method=\"post\" class=\"form\">
            <label for=\"username\">Username</label>
            <input type=\"text\" id=\"username\" name=\"username\" value=\"{html.escape(username)}\" required autofocus />
            <label for=\"password\">Password</label>
            <input type=\"password\" id=\"password\" name=\"password\" required />
            <button type=\"submit\">Sign in</button>
          </form>
        </section>
        """

    def _vehicle_options(self, vehicles: Iterable[Vehicle], selected: str = "") -> str:
        options = []
        for vehicle in vehicles:
            label = f"{vehicle.reg or 'Pending'} ({vehicle.chassis})"
            chosen = " selected" if vehicle.chassis == selected else ""
            options.append(
                f'<option value="{html.escape(vehicle.chassis)}"{chosen}>{html.escape(label)}</option>'
            )
        return "".join(options)

    def _render_home(self, user: User, vehicles: list[Vehicle]) -> str:
        rows = []
        for vehicle in vehicles:
            cells = [
                vehicle.reg or "Pending",
                self.service.registration_state(vehicle.reg),
                vehicle.chassis,
                vehicle.depot or "Not Assigned",
                vehicle.model or "N/A",
                vehicle.colour or "N/A",
                str(vehicle.seating) if vehicle.seating is not None else "N/A",
                str(vehicle.motor_kw) if vehicle.motor_kw is not None else "N/A",
                vehicle.dispatch_date.isoformat() if vehicle.dispatch_date else "N/A",
            ]
            rows.append("<tr>" + "".join(f"<td>{html.escape(cell)}</td>" for cell in cells) + "</tr>")
        table_body = "".join(rows) or '<tr><td colspan="9" class="muted">No vehicles found.</td></tr>'
        admin_tools = ""
        if user.role == UserRole.ADMIN:
            admin_tools = """
            <section class=\"card\">
              <h2>Add vehicle</h2>
              <form method=\"post\" action=\"/vehicles\" class=\"form grid\">
                <input name=\"chassis\" placeholder=\"Chassis number\" required />
                <input name=\"reg\" placeholder=\"Registration\" />
                <input name=\"depot\" placeholder=\"Depot\" />
                <input name=\"motor\" placeholder=\"Motor number\" />
                <input name=\"model\" placeholder=\"Model\" />
                <input name=\"colour\" placeholder=\"Colour\" />
                <input name=\"seating\" placeholder=\"Seating\" inputmode=\"numeric\" />
                <input name=\"motor_kw\" placeholder=\"Motor kW\" inputmode=\"numeric\" />
                <input name=\"dispatch_date\" type=\"date\" />
                <button type=\"submit\">Add vehicle</button>
              </form>
              <form method=\"post\" action=\"/vehicles/import\" class=\"form inline\">
                <button type=\"submit\">Import sample vehicles</button>
              </form>
            </section>
            """
        return f"""
        <section class=\"card\">
          <h1>Electric bus fleet</h1>
          <p class=\"muted\">{len(vehicles)} vehicles</p>
          <table class=\"data-table\">
            <thead><tr><th>Registration</th><th>State</th><th>Chassis</th><th>Depot</th><th>Model</th><th>Colour</th><th>Seating</th><th>Motor kW</th><th>Dispatched</th></tr></thead>
            <tbody>{table_body}</tbody>
          </table>
        </section>
        {admin_tools}
        """

    def _render_odometer(
        self,
        user: User,
        period: str,
        summaries: list[DepotSummary],
        vehicles: list[Vehicle],
    ) -> str:
        totals = fleet_totals(summaries)
        options = "".join(
            f'<option value="{key}"{" selected" if key == period else ""}>{html.escape(label)}</option>'
            for key, label in PERIOD_LABELS.items()
        )
        rows = []
        for summary in summaries:
            vehicle_items = "".join(
                f"<li>{html.escape(record.reg)} <span class=\"muted\">({_format_km(record.last_reading)}, {record.date.isoformat()})</span></li>"
                for record in sorted(summary.vehicles, key=lambda item: item.reg)
            )
            rows.append(
                f"<tr><td>{html.escape(summary.depot)}</td><td>{_format_km(summary.total_odometer)}</td>"
                f"<td>{summary.vehicle_count}</td><td><ul class=\"plain\">{vehicle_items}</ul></td></tr>"
            )
        table_body = "".join(rows) or (
            '<tr><td colspan="4" class="muted">No odometer data available for the selected time period</td></tr>'
        )
        record_form = ""
        if user.role in EDITOR_ROLES:
            record_form = f"""
            <section class=\"card\">
              <h2>Record reading</h2>
              <form method=\"post\" action=\"/odometer\" class=\"form grid\">
                <select name=\"chassis\" required>{self._vehicle_options(vehicles)}</select>
                <input name=\"value\" placeholder=\"Odometer (km)\" inputmode=\"decimal\" required />
                <input name=\"date\" type=\"date\" required />
                <button type=\"submit\">Save reading</button>
              </form>
            </section>
            """
        return f"""
        <section class=\"card\">
          <h1>Odometer summary</h1>
          <form method=\"get\" action=\"/odometer\" class=\"form inline\">
            <label for=\"period\">Filter by time period</label>
            <select id=\"period\" name=\"period\">{options}</select>
            <button type=\"submit\">Apply</button>
            <a class=\"button\" href=\"/odometer/export?period={period}\">Download Excel</a>
          </form>
          <div class=\"metrics\">
            <div class=\"metric\"><span class=\"label\">Total distance</span><span class=\"value\">{_format_km(totals['total_distance'])}</span></div>
            <div class=\"metric\"><span class=\"label\">Depots</span><span class=\"value\">{totals['depot_count']}</span></div>
            <div class=\"metric\"><span class=\"label\">Vehicles</span><span class=\"value\">{totals['vehicle_count']}</span></div>
          </div>
          <table class=\"data-table\">
            <thead><tr><th>Depot</th><th>Total odometer</th><th>Vehicles</th><th>Latest readings</th></tr></thead>
            <tbody>{table_body}</tbody>
          </table>
        </section>
        {record_form}
        """

    def _render_complaints(
        self,
        user: User,
        status_value: str,
        complaints: list[ComplaintView],
        counts: dict[str, int],
        vehicles: list[Vehicle],
    ) -> str:
        filters = "".join(
            f'<option value="{value}"{" selected" if value == status_value else ""}>{label}</option>'
            for value, label in (("all", "All"), ("open", "Open"), ("cleared", "Cleared"))
        )
        rows = []
        for view in complaints:
            complaint = view.complaint
            vehicle = view.vehicle
            action = ""
            if complaint.status is ComplaintStatus.OPEN and user.role == UserRole.ADMIN:
                action = (
                    f'<form method="post" action="/complaints/{complaint.id}/clear" class="inline">'
                    '<button type="submit">Mark cleared</button></form>'
                )
            rows.append(
                "<tr>"
                f"<td>{html.escape(vehicle.reg or 'Pending') if vehicle else ''}</td>"
                f"<td>{html.escape(vehicle.chassis) if vehicle else ''}</td>"
                f"<td>{html.escape(vehicle.depot or 'Not Assigned') if vehicle else ''}</td>"
                f"<td>{html.escape(complaint.text)}</td>"
                f"<td>{complaint.created_at.strftime('%Y-%m-%d')}</td>"
                f"<td><span class=\"status status--{complaint.status.value}\">{complaint.status.value.title()}</span></td>"
                f"<td>{action}</td>"
                "</tr>"
            )
        count = len(complaints)
        table_body = "".join(rows) or '<tr><td colspan="7" class="muted">No complaints found.</td></tr>'
        complaint_form = ""
        if user.role in EDITOR_ROLES:
            complaint_form = f"""
            <section class=\"card\">
              <h2>Log complaint</h2>
              <form method=\"post\" action=\"/complaints\" class=\"form\">
                <select name=\"chassis\" required>{self._vehicle_options(vehicles)}</select>
                <textarea name=\"text\" placeholder=\"Describe the issue\" required></textarea>
                <button type=\"submit\">Submit complaint</button>
              </form>
            </section>
            """
        return f"""
        <section class=\"card\">
          <h1>Maintenance complaints</h1>
          <div class=\"metrics\">
            <div class=\"metric\"><span class=\"label\">Open</span><span class=\"value\">{counts['open']}</span></div>
            <div class=\"metric\"><span class=\"label\">Cleared</span><span class=\"value\">{counts['cleared']}</span></div>
          </div>
          <form method=\"get\" action=\"/complaints\" class=\"form inline\">
            <label for=\"status\">Status</label>
            <select id=\"status\" name=\"status\">{filters}</select>
            <button type=\"submit\">Filter</button>
          </form>
          <p class=\"muted\">{count} complaint{'' if count == 1 else 's'} found</p>
          <table class=\"data-table\">
            <thead><tr><th>Registration</th><th>Chassis</th><th>Depot</th><th>Complaint</th><th>Date</th><th>Status</th><th></th></tr></thead>
            <tbody>{table_body}</tbody>
          </table>
        </section>
        {complaint_form}
        """

    def _render_documents(
        self,
        user: User,
        document_type: DocumentType,
        chassis: str,
        vehicles: list[Vehicle],
        documents: list[Document],
    ) -> str:
        type_options = "".join(
            f'<option value="{item.value}"{" selected" if item is document_type else ""}>{item.value.upper()}</option>'
            for item in DocumentType
        )
        listing = ""
        if chassis:
            items = "".join(
                f'<li><a href="/documents/{document.id}">{html.escape(document.filename)}</a> '
                f'<span class="muted">{document.size:,} bytes, {document.uploaded_at.strftime("%Y-%m-%d %H:%M")}</span></li>'
                for document in documents
            )
            listing = f'<ul class="documents">{items}</ul>' if items else '<p class="muted">No documents uploaded yet.</p>'
            if user.role in EDITOR_ROLES:
                listing += f"""
                <form method=\"post\" action=\"/sop\" enctype=\"multipart/form-data\" class=\"form\">
                  <input type=\"hidden\" name=\"chassis\" value=\"{html.escape(chassis)}\" />
                  <input type=\"hidden\" name=\"type\" value=\"{document_type.value}\" />
                  <input type=\"file\" name=\"file\" accept=\".xlsx,.xls,.csv,.pdf\" required />
                  <button type=\"submit\">Upload</button>
                  <p class=\"hint\">XLSX, XLS, CSV or PDF, up to {self.config.max_upload_bytes // (1024 * 1024)}MB.</p>
                </form>
                """
        else:
            listing = '<p class="muted">Select a vehicle to see its documents.</p>'
        return f"""
        <section class=\"card\">
          <h1>SOP for maintenance</h1>
          <form method=\"get\" action=\"/sop\" class=\"form inline\">
            <select name=\"chassis\"><option value=\"\">Select vehicle</option>{self._vehicle_options(vehicles, chassis)}</select>
            <select name=\"type\">{type_options}</select>
            <button type=\"submit\">Show</button>
          </form>
          {listing}
        </section>
        """


def _format_km(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,} km"
    return f"{value:,.1f} km"


def create_app(
    database_path: Optional[Path | str] = None,
    *,
    storage_dir: Optional[Path | str] = None,
) -> FleetDashboardWebApp:
    if database_path and not storage_dir:
        storage_dir = Path(database_path).parent / "documents"
    config = DashboardConfig.from_env(database_path=database_path, storage_dir=storage_dir)
    return FleetDashboardWebApp(config)


def main() -> None:  # pragma: no cover - manual execution helper
    parser = argparse.ArgumentParser(description="Run the EV fleet dashboard.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--database", default=None, help="SQLite database path (default: $FLEET_DB_PATH)")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    create_app(args.database).run(host=args.host, port=args.port)


if __name__ == "__main__":  # pragma: no cover - manual execution helper
    main()
