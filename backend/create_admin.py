"""Create or promote an ADMIN account.

    python create_admin.py someone@example.com "Their Name"

Sign-in happens through the identity provider, so only the email has to match.
"""
import sys

from sqlalchemy.orm import Session

from itam import crud
from itam.db import SessionLocal
from itam.models import User, UserRole

if len(sys.argv) < 2:
    sys.exit(__doc__)

EMAIL = sys.argv[1].strip()
NAME = sys.argv[2] if len(sys.argv) > 2 else EMAIL.split("@")[0]

db: Session = SessionLocal()

user = crud.get_user_by_email(db, EMAIL)
if user:
    user.role = UserRole.ADMIN
    user.is_active = True
    db.commit()
    print(f"Updated existing user {user.employee_id} -> admin")
else:
    user = User(
        name=NAME,
        email=EMAIL,
        employee_id=crud.generate_next_employee_id(db),
        role=UserRole.ADMIN,
        is_active=True,
    )
    db.add(user)
    db.commit()
    print(f"Created new admin user {user.employee_id}")

db.close()
