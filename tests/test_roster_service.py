import unittest
from unittest.mock import patch

from tests.helpers import DatabaseTestCase, make_profile
from cabin_khojo.utils.database import Profile
from cabin_khojo.services import roster_service
from cabin_khojo.services.roster_service import (
    list_students,
    promote_student,
    demote_student,
    promote_students,
    demote_students,
    promote_cohort,
    demote_cohort,
)


class TestRoster(DatabaseTestCase):

    def setUp(self):
        super().setUp()
        make_profile(self.session, "s1", "student", department="CSE", year=1, name="Anil")
        make_profile(self.session, "s2", "student", department="CSE", year=2, name="Bina")
        make_profile(self.session, "s3", "student", department="CSE", year=2, name="Chetan")
        make_profile(self.session, "s4", "student", department="CSE", year=4, name="Divya")
        make_profile(self.session, "e1", "student", department="ECE", year=2, name="Esha")

    def years(self, *ids):
        self.session.expire_all()
        return [self.session.query(Profile).filter_by(id=i).first().year for i in ids]

    def test_promote_and_demote_single(self):
        result, status_code = promote_student("s2")
        self.assertEqual(status_code, 200)
        self.assertEqual(result["status"], "success")
        self.assertEqual(result["student"]["year"], 3)

        result, status_code = demote_student("s2")
        self.assertEqual(result["student"]["year"], 2)
        self.assertEqual(self.years("s2"), [2])

    def test_boundaries_are_warnings_without_mutation(self):
        result, status_code = promote_student("s4")
        self.assertEqual(status_code, 200)
        self.assertEqual(result["status"], "warning")
        self.assertIn("Year 4", result["message"])

        result, status_code = demote_student("s1")
        self.assertEqual(status_code, 200)
        self.assertEqual(result["status"], "warning")
        self.assertIn("Year 1", result["message"])

        self.assertEqual(self.years("s4", "s1"), [4, 1])

    def test_department_scope(self):
        result, status_code = promote_student("e1", department="CSE")
        self.assertEqual(status_code, 403)
        self.assertEqual(self.years("e1"), [2])

    def test_non_student_not_found(self):
        _, status_code = promote_student("hod-cse")
        self.assertEqual(status_code, 404)

    def test_batch_with_one_at_boundary_is_refused_entirely(self):
        result, status_code = promote_students(["s1", "s2", "s4"], department="CSE")

        self.assertEqual(status_code, 200)
        self.assertEqual(result["status"], "warning")
        self.assertEqual(result["blocked"], ["s4"])
        self.assertEqual(result["updated"], [])
        self.assertEqual(self.years("s1", "s2", "s4"), [1, 2, 4])

    def test_batch_promote_selected(self):
        result, status_code = promote_students(["s1", "s2", "s3"], department="CSE")
        self.assertEqual(status_code, 200)
        self.assertEqual(sorted(result["updated"]), ["s1", "s2", "s3"])
        self.assertEqual(self.years("s1", "s2", "s3"), [2, 3, 3])

    def test_batch_demote_refused_at_first_year(self):
        result, _ = demote_students(["s1", "s2"])
        self.assertEqual(result["status"], "warning")
        self.assertEqual(self.years("s1", "s2"), [1, 2])

    def test_batch_validation(self):
        self.assertEqual(promote_students([])[1], 400)
        result, status_code = promote_students(["s1", "ghost"])
        self.assertEqual(status_code, 404)
        self.assertEqual(result["missing"], ["ghost"])
        self.assertEqual(promote_students(["s1", "e1"], department="CSE")[1], 403)
        self.assertEqual(self.years("s1", "e1"), [1, 2])

    def test_non_string_ids_are_bad_requests(self):
        result, status_code = promote_students([{"a": 1}])
        self.assertEqual(status_code, 400)
        self.assertEqual(result["error"], "student_ids must be a list of strings")
        self.assertEqual(promote_students(["s1", 2])[1], 400)
        self.assertEqual(self.years("s1"), [1])

    def test_partial_failure_is_not_rolled_back(self):
        original = roster_service._apply_shift

        def flaky(session, student_id, delta):
            if student_id == "s3":
                raise RuntimeError("connection reset")
            return original(session, student_id, delta)

        with patch.object(roster_service, "_apply_shift", side_effect=flaky):
            result, status_code = promote_students(["s2", "s3"])

        self.assertEqual(status_code, 207)
        self.assertEqual(result["status"], "partial")
        self.assertEqual(result["updated"], ["s2"])
        self.assertEqual(result["errors"][0]["student_id"], "s3")
        self.assertEqual(self.years("s2", "s3"), [3, 2])

    def test_cohort_promotion(self):
        result, status_code = promote_cohort("CSE", 2)
        self.assertEqual(status_code, 200)
        self.assertEqual(sorted(result["updated"]), ["s2", "s3"])
        self.assertEqual(self.years("s2", "s3", "e1"), [3, 3, 2])

    def test_cohort_at_boundary(self):
        result, _ = promote_cohort("CSE", 4)
        self.assertEqual(result["status"], "warning")
        self.assertEqual(self.years("s4"), [4])

        result, _ = demote_cohort("CSE", 1)
        self.assertEqual(result["status"], "warning")
        self.assertEqual(self.years("s1"), [1])

    def test_cohort_validation(self):
        self.assertEqual(promote_cohort("CSE", 7)[1], 400)
        self.assertEqual(promote_cohort("CSE", 3)[1], 404)

    def test_list_students(self):
        result, _ = list_students("CSE")
        self.assertEqual([s["id"] for s in result["students"]], ["s1", "s2", "s3", "s4"])
        result, _ = list_students("CSE", year=2)
        self.assertEqual([s["id"] for s in result["students"]], ["s2", "s3"])

    def test_year_stays_in_bounds(self):
        for _ in range(6):
            promote_students(["s1"])
        for _ in range(6):
            demote_student("s2")
        self.assertEqual(self.years("s1", "s2"), [4, 1])


if __name__ == '__main__':
    unittest.main()
