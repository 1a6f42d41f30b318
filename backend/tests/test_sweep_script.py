import json
from distribution import get_db
from distribution.models.audit import AuditLog
from distribution.models.delivery_staff import DeliveryStaff
from distribution.services.assignment import AssignmentEngine
from tests.test_utils_seed import ensure_staff, fresh
from tests.test_lifecycle_helpers import ready_order
import scripts.sweep_assignments as sweep_script


def test_sweep_script_expires_and_audits(app_instance, clock, monkeypatch, capsys):
    monkeypatch.setattr(sweep_script, 'create_app', lambda: app_instance)
    staff = ensure_staff()
    a = AssignmentEngine(get_db(), clock).assign(ready_order(clock).id, staff.id, accept_timeout_minutes=2)
    clock.advance(minutes=3)
    assert sweep_script.main(['--json']) == 0
    assert json.loads(capsys.readouterr().out) == {'expired': [a.id], 'late': []}
    assert fresh(DeliveryStaff, staff.id).current_orders == 0
    log = get_db().query(AuditLog).filter_by(action='ASSIGNMENT.SWEEP').one()
    assert log.actor_user_id == 0
    assert log.meta == {'expired': 1, 'late': 0, 'source': 'cron'}
    assert log.created_at == clock.now()


def test_sweep_script_quiet_run_writes_nothing(app_instance, monkeypatch):
    monkeypatch.setattr(sweep_script, 'create_app', lambda: app_instance)
    assert sweep_script.main([]) == 0
    assert get_db().query(AuditLog).count() == 0
