"""
End-to-end API tests through FastAPI's TestClient.
"""
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from backend.main import _attachment, create_app
from backend.renderers.base import RendererSet
from shared.constants import DocumentKind

from conftest import HEADER, FakeRenderer, make_answers


@pytest.fixture
def app(settings, engine, renderers, clock):
    app = create_app(settings=settings, engine=engine, renderers=renderers)
    app.state.services.links.clock = clock
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def _issue(client, **body):
    payload = {"header": HEADER, "ttlHours": 1}
    payload.update(body)
    response = client.post("/api/links", json=payload)
    assert response.status_code == 200
    return response.json()


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestLinks:

    def test_issue_link(self, client):
        data = _issue(client)
        assert data["url"] == f"https://form.example.test/form/{data['token']}"
        assert data["isBatch"] is False
        assert "expiresAt" in data

    def test_prefill_alias_and_default_ttl(self, client, clock):
        response = client.post("/api/links", json={"prefill": HEADER})
        assert response.status_code == 200
        token = response.json()["token"]
        assert client.get(f"/api/exams/prefill/{token}").json()["concurso"] == "CONC-77"

        clock.advance(hours=47)
        assert client.get(f"/api/exams/verify/{token}").json()["valid"] is True
        clock.advance(hours=1)
        assert client.get(f"/api/exams/verify/{token}").json()["valid"] is False

    def test_negative_ttl_rejected(self, client):
        response = client.post("/api/links", json={"header": HEADER, "ttlHours": -1})
        assert response.status_code == 422

    def test_batch_link_needs_folios(self, client):
        response = client.post("/api/links", json={"header": HEADER, "isBatch": True, "folios": [" "]})
        assert response.status_code == 400

    def test_batch_link(self, client):
        data = _issue(client, folios=["A1", "A2"])
        assert data["isBatch"] is True
        assert data["folios"] == ["A1", "A2"]

    def test_list_links(self, client):
        _issue(client)
        _issue(client)
        data = client.get("/api/links").json()
        assert data["totalCount"] == 2
        assert data["links"][0]["status"] == "ISSUED"


class TestVerifyAndPrefill:

    def test_verify_valid(self, client):
        token = _issue(client)["token"]
        data = client.get(f"/api/exams/verify/{token}").json()
        assert data["valid"] is True
        assert data["header"]["concurso"] == "CONC-77"
        assert "reason" not in data

    def test_verify_unknown(self, client):
        data = client.get("/api/exams/verify/nope").json()
        assert data == {"valid": False, "reason": "invalid"}

    def test_prefill(self, client):
        token = _issue(client)["token"]
        data = client.get(f"/api/exams/prefill/{token}").json()
        assert data["codigoPuesto"] == "PZ-100"
        assert data["nombreEspecialista"] == "María López"

    def test_prefill_unknown(self, client):
        assert client.get("/api/exams/prefill/nope").status_code == 404


class TestSubmit:

    def test_submit_then_download(self, client):
        token = _issue(client)["token"]

        response = client.post(f"/api/exams/{token}", json={"answers": make_answers(), "consent": {"accepted": True}})
        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["responsesUrl"].startswith("https://api.example.test/api/exams/")

        exam_id = data["examId"]
        download = client.get(f"/api/exams/{exam_id}/responses.pdf", params={"token": token})
        assert download.status_code == 200
        assert download.content == b"resp:F-001"
        assert download.headers["content-type"] == "application/pdf"
        assert "attachment" in download.headers["content-disposition"]

    def test_second_submit_is_used(self, client):
        token = _issue(client)["token"]
        assert client.post(f"/api/exams/{token}", json={"answers": make_answers()}).status_code == 200

        response = client.post(f"/api/exams/{token}", json={"answers": make_answers()})
        assert response.status_code == 400
        assert response.json() == {"error": "used"}
        assert client.get(f"/api/exams/verify/{token}").json()["reason"] == "used"

    def test_submit_expired(self, client, clock):
        token = _issue(client)["token"]
        clock.advance(hours=2)
        response = client.post(f"/api/exams/{token}", json={"answers": make_answers()})
        assert response.status_code == 400
        assert response.json() == {"error": "expired"}

    def test_submit_unknown(self, client):
        response = client.post("/api/exams/nope", json={"answers": make_answers()})
        assert response.status_code == 400
        assert response.json() == {"error": "invalid"}

    def test_submit_validation_error(self, client):
        token = _issue(client)["token"]
        response = client.post(f"/api/exams/{token}", json={"answers": make_answers(scores_per_case=[])})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation"
        assert "fieldErrors" in body["details"]
        assert client.get(f"/api/exams/verify/{token}").json()["valid"] is True

    def test_submit_render_failure(self, settings, engine, clock):
        failing = RendererSet([FakeRenderer(DocumentKind.TRANSCRIPT, fail_always=True)])
        app = create_app(settings=settings, engine=engine, renderers=failing)
        with TestClient(app) as client:
            token = _issue(client)["token"]
            response = client.post(f"/api/exams/{token}", json={"answers": make_answers()})
            assert response.status_code == 500
            assert response.json() == {"error": "server-error"}
            assert client.get(f"/api/exams/verify/{token}").json()["valid"] is True


class TestExamAccess:

    @pytest.fixture
    def submitted(self, client):
        token = _issue(client)["token"]
        exam_id = client.post(f"/api/exams/{token}", json={"answers": make_answers()}).json()["examId"]
        return exam_id, token

    def test_wrong_token_forbidden(self, client, submitted):
        exam_id, _ = submitted
        response = client.get(f"/api/exams/{exam_id}/responses.pdf", params={"token": "other"})
        assert response.status_code == 403

    def test_missing_token(self, client, submitted):
        exam_id, _ = submitted
        assert client.get(f"/api/exams/{exam_id}/responses.pdf").status_code == 400

    def test_unknown_exam(self, client):
        response = client.get("/api/exams/EXAM-NOPE/responses.pdf", params={"token": "x"})
        assert response.status_code == 404

    def test_list_and_delete(self, client, submitted):
        exam_id, token = submitted
        listing = client.get("/api/exams", params={"token": token}).json()
        assert [e["examId"] for e in listing["exams"]] == [exam_id]

        assert client.delete(f"/api/exams/{exam_id}", params={"token": "other"}).status_code == 403
        assert client.delete(f"/api/exams/{exam_id}", params={"token": token}).status_code == 200
        assert client.get("/api/exams", params={"token": token}).json()["totalCount"] == 0


class TestDocuments:

    def _casos(self):
        return [{"planteamiento": "P", "aspectos": [{"descripcion": "A", "puntaje": 5}]}]

    def test_batch_zip(self, client):
        response = client.post("/api/artifacts/generar-lote", json={
            "casos": self._casos(),
            "folios": ["A1", "A2"],
            "header": {"concurso": "CONC-77"},
        })
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert sorted(archive.namelist()) == [
                "A1/fa.pdf", "A1/fe.xlsx", "A1/resp.pdf",
                "A2/fa.pdf", "A2/fe.xlsx", "A2/resp.pdf",
            ]

    def test_batch_without_folios(self, client):
        response = client.post("/api/artifacts/generar-lote", json={"casos": self._casos(), "folios": []})
        assert response.status_code == 400

    def test_batch_without_cases(self, client):
        response = client.post("/api/artifacts/generar-lote", json={"casos": [], "folios": ["A1"]})
        assert response.status_code == 400

    def test_single_structure(self, client):
        response = client.post("/api/fa/generar", json={"casos": self._casos(), "header": {"folio": "F-7"}})
        assert response.status_code == 200
        assert response.content == b"fa:F-7"

    def test_single_scoring_sheet(self, client):
        response = client.post("/api/fe/generar", json={"casos": self._casos()})
        assert response.status_code == 200
        assert response.content == b"fe:"

    def test_single_document_without_cases(self, client):
        assert client.post("/api/fe/generar", json={"casos": []}).status_code == 400

    def test_non_ascii_folio_gets_ascii_download_name(self, client):
        response = client.post("/api/fa/generar", json={"casos": self._casos(), "header": {"folio": "Łódź-01"}})
        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert disposition.isascii()
        assert disposition.startswith("attachment; filename=\"fa_")

    def test_responses_batch_zip(self, client):
        response = client.post("/api/respuestas/generar-lote", json={
            "casos": self._casos(),
            "folios": ["A1", "", "A2"],
        })
        assert response.status_code == 200
        assert "RESPUESTAS_lote.zip" in response.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(response.content)) as archive:
            assert sorted(archive.namelist()) == ["A1/resp.pdf", "A2/resp.pdf", "folio_2/resp.pdf"]
            assert archive.read("A1/resp.pdf") == b"resp:A1"

    def test_responses_batch_without_folios(self, client):
        response = client.post("/api/respuestas/generar-lote", json={"casos": self._casos(), "folios": []})
        assert response.status_code == 400


class TestAttachmentHeaders:

    def test_unicode_name_keeps_utf8_form(self):
        headers = _attachment("respuestas_Łódź.pdf")
        disposition = headers["Content-Disposition"]
        disposition.encode("latin-1")
        assert "filename=\"respuestas___d_.pdf\"" in disposition
        assert "filename*=UTF-8''respuestas_%C5%81%C3%B3d%C5%BA.pdf" in disposition
        assert headers["Cache-Control"] == "no-store"


class TestSubmitPayloadShapes:

    def test_non_object_answers_is_validation_error(self, client):
        token = _issue(client)["token"]
        response = client.post(f"/api/exams/{token}", json={"answers": []})
        assert response.status_code == 400
        assert response.json()["error"] == "validation"
        assert client.get(f"/api/exams/verify/{token}").json()["valid"] is True

    def test_missing_answers_is_validation_error(self, client):
        token = _issue(client)["token"]
        response = client.post(f"/api/exams/{token}", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "validation"

    def test_link_is_checked_before_body_shape(self, client, clock):
        token = _issue(client)["token"]
        clock.advance(hours=2)
        response = client.post(f"/api/exams/{token}", json={"answers": "texto"})
        assert response.status_code == 400
        assert response.json() == {"error": "expired"}

        response = client.post("/api/exams/nope", json={"answers": 7})
        assert response.json() == {"error": "invalid"}

    def test_malformed_case_header_is_ignored(self, client):
        token = _issue(client)["token"]
        answers = make_answers()
        answers["casos"][0]["encabezado"] = "texto"
        response = client.post(f"/api/exams/{token}", json={"answers": answers})
        assert response.status_code == 200
        assert client.get(f"/api/exams/verify/{token}").json()["reason"] == "used"


class TestTriangulation:

    @pytest.fixture
    def submitted(self, client):
        token = _issue(client)["token"]
        answers = make_answers(scores_per_case=((4, 4, 2),))
        exam_id = client.post(f"/api/exams/{token}", json={"answers": answers}).json()["examId"]
        return exam_id, token

    def test_preview(self, client, submitted):
        exam_id, token = submitted
        response = client.get(f"/api/triangulacion/submissions/{exam_id}/preview", params={"token": token})
        assert response.status_code == 200
        data = response.json()
        assert data["examId"] == exam_id
        assert data["encabezado"]["codigoPuesto"] == "PZ-100"
        assert data["encabezado"]["nombreEspecialista"] == "María López"
        assert [a["descripcion"] for a in data["casos"][0]["aspectos"]] == ["Aspecto 1", "Aspecto 2", "Aspecto 3"]
        assert [a["ponderacion"] for a in data["dto"]["casos"][0]["aspectos"]] == [40, 40, 20]
        assert data["respuestasOriginales"]["modalidad"] == "Presencial"

    def test_regenerated_documents(self, client, submitted):
        exam_id, token = submitted
        fa = client.get(f"/api/triangulacion/submissions/{exam_id}/fa", params={"token": token})
        assert fa.status_code == 200
        assert fa.content == b"fa:F-001"
        assert fa.headers["cache-control"] == "no-store"

        fe = client.get(f"/api/triangulacion/submissions/{exam_id}/fe", params={"token": token})
        assert fe.status_code == 200
        assert fe.content == b"fe:F-001"

    def test_wrong_or_missing_token(self, client, submitted):
        exam_id, _ = submitted
        for path in ("preview", "fa", "fe"):
            url = f"/api/triangulacion/submissions/{exam_id}/{path}"
            assert client.get(url, params={"token": "other"}).status_code == 403
            assert client.get(url).status_code == 403

    def test_unknown_exam(self, client):
        response = client.get("/api/triangulacion/submissions/EXAM-NOPE/fe", params={"token": "x"})
        assert response.status_code == 404

    def test_render_failure(self, settings, engine, clock):
        renderers = RendererSet([
            FakeRenderer(DocumentKind.TRANSCRIPT),
            FakeRenderer(DocumentKind.STRUCTURE, fail_always=True),
        ])
        app = create_app(settings=settings, engine=engine, renderers=renderers)
        with TestClient(app) as client:
            token = _issue(client)["token"]
            exam_id = client.post(f"/api/exams/{token}", json={"answers": make_answers()}).json()["examId"]
            response = client.get(f"/api/triangulacion/submissions/{exam_id}/fa", params={"token": token})
            assert response.status_code == 500
