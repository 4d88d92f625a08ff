import datetime
import unittest

from cabin_khojo.utils.database import init_db, reset_db, Profile, GatePass


def make_profile(session, id, role, department="CSE", name=None, year=None, roll=None):
    profile = Profile(
        id=id,
        name=name or id.replace("-", " ").title(),
        roll=roll,
        department=department,
        role=role,
        year=year,
    )
    session.add(profile)
    session.commit()
    return profile


def make_gatepass(session, id, student_id, hod_id, status="pending", qr_url=None,
                  reason="Medical appointment", date="2025-06-01", minutes_ago=0):
    gate_pass = GatePass(
        id=id,
        student_id=student_id,
        hod_id=hod_id,
        reason=reason,
        date=date,
        status=status,
        qr_url=qr_url,
        created_at=datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(minutes=minutes_ago),
    )
    session.add(gate_pass)
    session.commit()
    return gate_pass


class DatabaseTestCase(unittest.TestCase):
    """Fresh in-memory database per test, seeded with one CSE HOD, one ECE HOD and a guard."""

    def setUp(self):
        reset_db()
        self.session = init_db()
        make_profile(self.session, "hod-cse", "hod", department="CSE", name="Dr Rao")
        make_profile(self.session, "hod-ece", "hod", department="ECE", name="Dr Iyer")
        make_profile(self.session, "guard-1", "guard", department=None, name="Main Gate")

    def tearDown(self):
        reset_db()

    def reload(self, model, id):
        self.session.expire_all()
        return self.session.query(model).filter_by(id=id).first()
