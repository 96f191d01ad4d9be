import importlib
import os
import sys
import tempfile
import unittest
from io import BytesIO
from pathlib import Path

from werkzeug.datastructures import FileStorage

from ledger import LedgerNotFoundError, LedgerValidationError, debts
from models import Customer, CustomerFile


class DebtFilesTestCase(unittest.TestCase):
    def setUp(self):
        os.environ["DATABASE_URL"] = "sqlite:///:memory:"
        if "app" in sys.modules:
            self.app_module = importlib.reload(sys.modules["app"])
        else:
            self.app_module = importlib.import_module("app")

        self.app = self.app_module.create_app()
        self.app.testing = True
        self.instance_dir = tempfile.TemporaryDirectory()
        self.app.instance_path = self.instance_dir.name
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.db = self.app_module.db
        self.db.create_all()

        RoleEnum = self.app_module.RoleEnum
        User = self.app_module.User
        admin = User(name="Admin", email="admin@example.com", role=RoleEnum.admin)
        admin.set_password("Password!1")
        clerk = User(name="Clerk", email="clerk@example.com", role=RoleEnum.staff)
        clerk.set_password("Password!1")
        self.customer = Customer(company_name="Hai Phong Logistics")
        self.db.session.add_all([admin, clerk, self.customer])
        self.db.session.commit()

        self.client = self.app.test_client()
        self.headers = self._login("admin@example.com")

    def tearDown(self):
        self.db.session.remove()
        self.db.drop_all()
        self.ctx.pop()
        self.instance_dir.cleanup()
        os.environ.pop("DATABASE_URL", None)
        if "app" in sys.modules:
            del sys.modules["app"]

    def _login(self, email):
        resp = self.client.post("/api/auth/login", json={"email": email, "password": "Password!1"})
        return {"Authorization": f"Bearer {resp.get_json()['access_token']}"}

    def _upload(self, content=b"%PDF-1.4 invoice", filename="invoice 2024.pdf", year=2024, notes=None):
        storage = FileStorage(stream=BytesIO(content), filename=filename, content_type="application/pdf")
        return debts.upload_debt_file(self.customer.id, year, storage, notes)

    def test_upload_stores_file_under_instance_folder(self):
        record = self._upload(notes="  March invoices ")

        self.assertEqual(record.file_name, "invoice_2024.pdf")
        self.assertEqual(record.file_type, "application/pdf")
        self.assertEqual(record.file_size, len(b"%PDF-1.4 invoice"))
        self.assertEqual(record.notes, "March invoices")
        self.assertTrue(record.file_path.startswith(f"debt_files/{self.customer.id}/2024/"))
        self.assertTrue(record.file_path.endswith("_invoice_2024.pdf"))

        stored = Path(self.instance_dir.name) / record.file_path
        self.assertEqual(stored.read_bytes(), b"%PDF-1.4 invoice")

    def test_upload_sanitises_path_components(self):
        record = self._upload(filename="../../etc/passwd")

        self.assertEqual(record.file_name, "etc_passwd")
        stored = debts.file_absolute_path(record).resolve()
        self.assertTrue(str(stored).startswith(str(Path(self.instance_dir.name).resolve())))

    def test_upload_rejects_empty_and_unnamed_files(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            self._upload(content=b"")
        self.assertIn("file", ctx.exception.errors)

        with self.assertRaises(LedgerValidationError):
            self._upload(filename="")
        self.assertEqual(CustomerFile.query.count(), 0)

        folder = Path(self.instance_dir.name) / "debt_files" / str(self.customer.id) / "2024"
        self.assertEqual(list(folder.glob("*")) if folder.exists() else [], [])

    def test_upload_for_unknown_customer(self):
        storage = FileStorage(stream=BytesIO(b"data"), filename="a.pdf")
        with self.assertRaises(LedgerNotFoundError):
            debts.upload_debt_file(999, 2024, storage)

    def test_files_are_listed_per_year_newest_first(self):
        first = self._upload(filename="a.pdf", year=2024)
        second = self._upload(filename="b.pdf", year=2024)
        other_year = self._upload(filename="c.pdf", year=2025)

        self.assertEqual([row.id for row in debts.get_customer_files(self.customer.id, 2024)], [second.id, first.id])
        self.assertEqual({row.id for row in debts.get_customer_files(self.customer.id)}, {first.id, second.id, other_year.id})

    def test_delete_removes_record_and_stored_copy(self):
        record = self._upload()
        stored = debts.file_absolute_path(record)

        debts.delete_debt_file(record.id)
        self.assertFalse(stored.exists())
        self.assertEqual(CustomerFile.query.count(), 0)

        missing = self._upload(filename="gone.pdf")
        debts.file_absolute_path(missing).unlink()
        debts.delete_debt_file(missing.id)
        self.assertEqual(CustomerFile.query.count(), 0)

        with self.assertRaises(LedgerNotFoundError):
            debts.delete_debt_file(missing.id)

    def test_file_endpoints(self):
        resp = self.client.post(
            f"/api/debts/customers/{self.customer.id}/2024/files",
            data={"file": (BytesIO(b"statement"), "statement.txt"), "notes": "Year end"},
            headers=self.headers,
            content_type="multipart/form-data",
        )
        self.assertEqual(resp.status_code, 201, resp.get_data(as_text=True))
        body = resp.get_json()
        self.assertEqual(body["fileName"], "statement.txt")
        self.assertEqual(body["fileSize"], len(b"statement"))
        self.assertEqual(body["notes"], "Year end")
        self.assertNotIn("filePath", body)
        file_id = body["id"]

        resp = self.client.get(f"/api/debts/customers/{self.customer.id}/2024/files", headers=self.headers)
        self.assertEqual([row["id"] for row in resp.get_json()], [file_id])
        resp = self.client.get(f"/api/debts/customers/{self.customer.id}/2023/files", headers=self.headers)
        self.assertEqual(resp.get_json(), [])

        resp = self.client.get(f"/api/debts/files/{file_id}/download", headers=self.headers)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data, b"statement")
        self.assertIn("statement.txt", resp.headers["Content-Disposition"])
        resp.close()

        resp = self.client.delete(f"/api/debts/files/{file_id}", headers=self._login("clerk@example.com"))
        self.assertEqual(resp.status_code, 403)

        resp = self.client.delete(f"/api/debts/files/{file_id}", headers=self.headers)
        self.assertEqual(resp.status_code, 204)
        resp = self.client.get(f"/api/debts/files/{file_id}/download", headers=self.headers)
        self.assertEqual(resp.status_code, 404)

    def test_upload_without_file_part(self):
        resp = self.client.post(
            f"/api/debts/customers/{self.customer.id}/2024/files",
            data={"notes": "Nothing attached"},
            headers=self.headers,
            content_type="multipart/form-data",
        )
        self.assertEqual(resp.status_code, 400)
        self.assertIn("file", resp.get_json()["errors"])

        resp = self.client.post(
            "/api/debts/customers/999/2024/files",
            data={"file": (BytesIO(b"x"), "x.pdf")},
            headers=self.headers,
            content_type="multipart/form-data",
        )
        self.assertEqual(resp.status_code, 404)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
