"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class CLIImportTests(unittest.TestCase):
    def tearDown(self) -> None:
        self._clear_app_modules()

    @staticmethod
    def _clear_app_modules() -> None:
        for name in [
            m for m in list(sys.modules.keys()) if m == "teampulse" or m.startswith("teampulse.")
        ]:
            sys.modules.pop(name, None)

    def test_import_database_without_fastapi(self) -> None:
        """Scripts only need the database layer, which must not pull in FastAPI."""

        self._clear_app_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None
        try:
            database_module = importlib.import_module("teampulse.database")
            self.assertTrue(hasattr(database_module, "Database"))

            insights_module = importlib.import_module("teampulse.insights")
            self.assertTrue(hasattr(insights_module, "compute_insights"))

            package = sys.modules.get("teampulse")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "Database"))
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
