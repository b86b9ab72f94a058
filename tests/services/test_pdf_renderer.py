from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from reportlab.pdfgen import canvas

from app.core.exceptions import DependencyFailure, PdfOutputError, RenderError
from app.models.delivery_note import DeliveryNote, DeliveryNoteItem, PopulatedDeliveryNote
from app.services.pdf_renderer import DeliveryNotePdfRenderer, build_lines


def _texts(lines):
    return [line.text for line in lines if line.text]


@pytest.fixture
def note(owner_user, project_p1, client_c1):
    return DeliveryNote(
        note_number="DN-1",
        project_id=project_p1.id,
        client_id=client_c1.id,
        owner_id=owner_user.id,
        date=datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc),
        items=[
            DeliveryNoteItem(description="Installation", quantity=8, unit_price=50, person="Pedro"),
            DeliveryNoteItem(description="Site visit", quantity=1.5),
        ],
        notes="Access through the back door.",
    )


@pytest.fixture
def populated(note, owner_user, client_c1, project_p1):
    return PopulatedDeliveryNote(note=note, owner=owner_user, client=client_c1, project=project_p1)


class TestBuildLines:
    def test_header_and_sections_in_order(self, populated):
        texts = _texts(build_lines(populated))

        assert texts[0] == "Delivery Note #DN-1"
        assert texts[1] == "Date: 15/03/2024"
        headings = [t for t in texts if t.endswith(":")]
        assert headings == ["Provider:", "Client:", "Project:", "Items:", "Additional notes:"]

    def test_provider_with_company(self, populated):
        texts = _texts(build_lines(populated))

        assert "Ana García (owner@example.com)" in texts
        assert "Company: Construcciones Ana SL (CIF: B12345678)" in texts
        assert any(t.startswith("Address: Calle Mayor 1, Madrid 28001, Spain") for t in texts)

    def test_provider_without_company_shows_nif(self, populated, owner_user):
        populated.owner = owner_user.model_copy(update={"company": None})
        texts = _texts(build_lines(populated))

        assert "NIF: 12345678Z" in texts
        assert not any(t.startswith("Company:") for t in texts)

    def test_missing_references(self, note):
        texts = _texts(build_lines(PopulatedDeliveryNote(note=note)))

        assert "Provider details not available." in texts
        assert "Client details not available." in texts
        assert "Project details not available." in texts

    def test_missing_client_fields_render_na(self, populated, client_c1):
        populated.client = client_c1.model_copy(update={"email": None, "cif": None, "address": None})
        texts = _texts(build_lines(populated))

        assert "Cliente Uno (N/A)" in texts
        assert "CIF/NIF: N/A" in texts
        assert "Address: N/A" in texts

    def test_item_rows_and_grand_total(self, populated):
        lines = build_lines(populated)
        rows = [line.columns for line in lines if line.kind == "table_row"]

        assert rows[0] == ("Installation", "Pedro", "8", "50.00 €", "400.00 €")
        assert rows[1] == ("Site visit", "", "1.5", "-", "0.00 €")
        assert "Grand total: 400.00 €" in _texts(lines)

    def test_no_grand_total_without_prices(self, populated, note):
        populated.note = note.model_copy(update={
            "items": [DeliveryNoteItem(description="Hours", quantity=4)]
        })
        assert not any(line.kind == "total" for line in build_lines(populated))

    def test_notes_omitted_when_empty(self, populated, note):
        populated.note = note.model_copy(update={"notes": None})
        assert "Additional notes:" not in _texts(build_lines(populated))

    def test_unsigned_shows_pending_signature(self, populated):
        lines = build_lines(populated)

        assert "Pending signature" in _texts(lines)
        assert lines[-1].kind == "signature_line"

    def test_signed_links_signature(self, populated, note):
        populated.note = note.model_copy(update={
            "is_signed": True,
            "signature_url": "cidABC",
            "signed_at": datetime(2024, 3, 16, 17, 45, tzinfo=timezone.utc),
        })
        populated.signature_gateway_url = "https://gateway.example.com/ipfs/cidABC"
        lines = build_lines(populated)

        assert "Signed: 16/03/2024 17:45" in _texts(lines)
        assert lines[-1].kind == "link"
        assert lines[-1].url == "https://gateway.example.com/ipfs/cidABC"

    def test_signed_without_gateway_url(self, populated, note):
        populated.note = note.model_copy(update={"is_signed": True, "signature_url": "cidABC"})
        lines = build_lines(populated)

        assert lines[-1].kind == "notice"
        assert lines[-1].text == "(Signature link unavailable)"


class TestRender:
    def test_produces_pdf(self, populated):
        pdf = DeliveryNotePdfRenderer().render(populated)

        assert pdf.startswith(b"%PDF")
        assert pdf.rstrip().endswith(b"%%EOF")

    def test_is_deterministic(self, populated):
        renderer = DeliveryNotePdfRenderer()
        assert renderer.render(populated) == renderer.render(populated)

    def test_does_not_mutate_input(self, populated):
        before = populated.model_dump()
        DeliveryNotePdfRenderer().render(populated)
        assert populated.model_dump() == before

    def test_long_item_list_spans_pages(self, populated, note):
        items = [
            DeliveryNoteItem(description=f"Task {i} " + "with a long description " * 4, quantity=1, unit_price=10)
            for i in range(120)
        ]
        populated.note = note.model_copy(update={"items": items})

        original = canvas.Canvas.showPage
        with patch.object(canvas.Canvas, "showPage", autospec=True, side_effect=original) as show_page:
            pdf = DeliveryNotePdfRenderer().render(populated)

        assert pdf.startswith(b"%PDF")
        # one call per page break plus the final page flushed by save()
        assert show_page.call_count >= 2

    def test_layout_failure_raises_render_error(self, populated):
        with patch("app.services.pdf_renderer.build_lines", side_effect=RuntimeError("boom")):
            with pytest.raises(RenderError) as exc:
                DeliveryNotePdfRenderer().render(populated)

        assert exc.value.error == "pdf_generation"
        assert isinstance(exc.value, DependencyFailure)

    def test_output_failure_raises_pdf_output_error(self, populated):
        with patch("reportlab.pdfgen.canvas.Canvas.save", side_effect=IOError("disk full")):
            with pytest.raises(PdfOutputError) as exc:
                DeliveryNotePdfRenderer().render(populated)

        assert exc.value.error == "pdf_output"
