# app.py

from dotenv import load_dotenv

# Load environment variables from .env file first
load_dotenv()

# Module imports after load_dotenv() - E402 is intentional
from docrate import create_app  # noqa: E402

app = create_app()


if __name__ == "__main__":
    app.run()
