"""
Idempotent seed-скрипт.
Запуск:
  python seed.py --reset         # дропнуть и пересоздать БД + демо-данные + admin
  python seed.py --ensure-admin  # создать только пользователя admin@example.com
  python seed.py                 # мягкое наполнение недостающих данных (idempotent)
"""
import argparse

from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from fixtures.demo_studios import seed_directory
from models import User


def ensure_admin(email: str = "admin@example.com", password: str = "admin") -> User:
    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email, password_hash=generate_password_hash(password),
                    role="ADMIN", name="Администратор", is_active=True)
        db.session.add(user)
        db.session.commit()
    return user


def main():
    parser = argparse.ArgumentParser(description="Заполнение БД демо-данными")
    parser.add_argument("--reset", action="store_true", help="drop_all + create_all перед наполнением")
    parser.add_argument("--ensure-admin", action="store_true", help="только пользователь-администратор")
    args = parser.parse_args()

    app = create_app("dev")
    with app.app_context():
        if args.reset:
            db.drop_all()
        db.create_all()
        ensure_admin()
        if args.ensure_admin:
            print("admin ok")
            return
        studios = seed_directory()
        print(f"seeded: {len(studios)} studios")


if __name__ == "__main__":
    main()
