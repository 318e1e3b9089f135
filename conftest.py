import sys
import os

# Set Env Vars BEFORE any imports to satisfy Pydantic Settings
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
# No OPENAI_API_KEY: the coach runs simulated and suggestions use the rule path
# unless a test wires a mocked client explicitly.
os.environ.pop("OPENAI_API_KEY", None)

# Add the project root to the python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), ".")))
