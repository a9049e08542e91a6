import os
import sys

import pytest
from dotenv import load_dotenv

if __name__ == "__main__":
    # Variables de test (stockage mémoire, pas de fichiers de logs) si le fichier existe
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env.test"))
    os.environ.setdefault("USE_MONGO", "false")
    os.environ.setdefault("LOG_TO_FILES", "false")

    test_path = os.path.join(os.path.dirname(__file__), "tests")

    exit_code = pytest.main([test_path, "-v"])
    sys.exit(exit_code)
