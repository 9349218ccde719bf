#!/usr/bin/env python3
"""Initialize database tables"""
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

from salonbook import create_app
from salonbook.extensions import db


def init_database():
    load_dotenv()
    app = create_app()
    with app.app_context():
        db.create_all()
        print(f"Tables ready in {app.config['SQLALCHEMY_DATABASE_URI']}")


if __name__ == "__main__":
    init_database()
