# Overview: Pytest coverage for the Flask CLI bootstrap commands.

from rentdesk.models import ApiToken, Category, Organization, Product
from rentdesk.services import tenant_service


class TestOrgCommands:

    def test_create_org_and_issue_token(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orgs", "create", "--name", "Gamma Gear", "--code", "GAMMA"])
        assert "PASS Created organization: Gamma Gear" in result.output

        org = db_session.query(Organization).filter_by(code="GAMMA").one()
        result = runner.invoke(args=["orgs", "issue-token", "--org-id", str(org.id), "--label", "counter"])
        assert "PASS Issued token" in result.output

        plaintext = result.output.split("TOKEN ", 1)[1].strip()
        assert tenant_service.resolve_token(plaintext).org_id == org.id

    def test_duplicate_org_code_fails(self, app, db_session, org_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orgs", "create", "--name", "Copy", "--code", org_a.code])

        assert "FAIL" in result.output
        assert db_session.query(Organization).count() == 1

    def test_revoke_token(self, app, db_session, org_a):
        token, _ = tenant_service.issue_token(org_a.id, "temp")
        runner = app.test_cli_runner()

        result = runner.invoke(args=["orgs", "revoke-token", "--org-id", str(org_a.id), "--token-id", str(token.id)])

        assert "PASS Revoked token" in result.output
        assert db_session.get(ApiToken, token.id).is_active is False


class TestProductCommands:

    def test_create_product_with_new_category(self, app, db_session, org_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "products", "create", "--org-id", str(org_a.id),
            "--code", "LIGHT-01", "--title", "LED panel", "--rent-cents", "15000",
            "--category", "Lighting",
        ])

        assert "PASS Created category: Lighting" in result.output
        product = db_session.query(Product).filter_by(org_id=org_a.id, code="LIGHT-01").one()
        category = db_session.query(Category).filter_by(org_id=org_a.id, name="Lighting").one()
        assert product.category_id == category.id

        result = runner.invoke(args=["products", "list", "--org-id", str(org_a.id)])
        assert "LIGHT-01" in result.output

    def test_unknown_org_fails(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "products", "create", "--org-id", "999",
            "--code", "X", "--title", "X", "--rent-cents", "1",
        ])

        assert "FAIL" in result.output

    def test_failed_product_leaves_no_new_category(self, app, db_session, org_a, product_a):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            "products", "create", "--org-id", str(org_a.id),
            "--code", product_a.code, "--title", "Duplicate", "--rent-cents", "100",
            "--category", "Grip",
        ])

        assert "FAIL" in result.output
        assert "Created category" not in result.output
        assert db_session.query(Category).filter_by(org_id=org_a.id, name="Grip").count() == 0
