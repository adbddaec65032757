"""Tests for BriExportService."""

from openpyxl import load_workbook

from app.core.security import PharmacyScope
from app.features.exports.schemas import BriExportRequest
from app.features.exports.service import BriExportService, group_details

ADMIN_SCOPE = PharmacyScope(is_admin=True)


class TestGroupDetails:
    """Tests for per-EAN grouping."""

    def test_rows_without_ean_dropped(self, bri_results) -> None:
        grouped = group_details(bri_results[2])

        assert list(grouped) == ["3400930000001", "3400930000002"]
        assert grouped["3400930000002"][0]["quantity_sold"] == 2


class TestBriWorkbook:
    """Tests for the generated workbook."""

    async def test_sheets(self, fake_db, bri_results, bri_body) -> None:
        fake_db.add_result(*bri_results)

        buffer = await BriExportService().export_bri(
            fake_db, BriExportRequest.model_validate(bri_body), ADMIN_SCOPE
        )
        workbook = load_workbook(buffer)

        assert workbook.sheetnames == ["Total", "Produit", "3400930000001", "3400930000002"]

        total = workbook["Total"]
        assert [c.value for c in total[1]] == ["Nom Pharmacie", "IDNAT", "Qté Vendues"]
        assert total["C3"].value == 0
        assert total.auto_filter.ref == "A1:C3"

        product = workbook["Produit"]
        assert product["C3"].value == "-"
        assert product["A1"].font.bold is True
        assert product["A1"].fill.start_color.rgb.endswith("E0E0E0")
        assert product["A1"].alignment.horizontal == "center"

        detail = workbook["3400930000001"]
        assert [c.value for c in detail[2]] == ["Pharmacie du Centre", "750000001", 10]

    async def test_column_widths(self, fake_db, bri_results, bri_body) -> None:
        """Widths should be len + 2, clamped to [10, 50]."""
        fake_db.add_result(*bri_results)

        buffer = await BriExportService().export_bri(
            fake_db, BriExportRequest.model_validate(bri_body), ADMIN_SCOPE
        )
        total = load_workbook(buffer)["Total"]

        assert total.column_dimensions["A"].width == len("Pharmacie du Centre") + 2
        assert total.column_dimensions["B"].width == 11
        assert total.column_dimensions["C"].width == len("Qté Vendues") + 2

    async def test_selection_bound(self, fake_db, bri_body, pharmacy_id) -> None:
        """Product codes and the user's pharmacy should reach every query."""
        scope = PharmacyScope(is_admin=False, pharmacy_id=pharmacy_id)
        request = BriExportRequest.model_validate({**bri_body, "productCodes": ["3400930000001"]})

        await BriExportService().export_bri(fake_db, request, scope)

        assert len(fake_db.statements) == 3
        assert "p.id = CAST(:pharmacy_id AS uuid)" in fake_db.sql[0]
        assert "ip.pharmacy_id = CAST(:pharmacy_id AS uuid)" in fake_db.sql[1]
        for params in fake_db.params:
            assert params["product_codes"] == ["3400930000001"]
            assert params["pharmacy_id"] == pharmacy_id
