"""Example: drive the punch workflow through the service layer (no Flask).

Controllers stay thin; everything below is what the HTTP routes call.
"""

import importlib
import sys

from dotenv import load_dotenv

from config import get_settings_module

from src.attendease.attendease.attendance.model import PunchRequest
from src.attendease.attendease.container import build_container


def main(emp_id: int = 1):
    load_dotenv(override=False)
    settings = importlib.import_module(get_settings_module())
    container = build_container(
        db_config=settings.DB_CONFIG,
        storage_config=settings.STORAGE_CONFIG,
        recognition_config=settings.RECOGNITION_CONFIG,
        punch_config=settings.PUNCH_CONFIG,
    )
    print("storage chain:", " -> ".join(container.storage.chain))

    record = container.punch_orchestrator.open_day(emp_id)
    print("today:", record.work_date, record.state.value)

    result = container.punch_orchestrator.submit_punch(
        PunchRequest(direction="IN", latitude=28.6139, longitude=77.2090, address="Main gate", employee_id=emp_id)
    )
    print("punched in at", result.record.punch_in_time)


if __name__ == "__main__":
    main(int(sys.argv[1]) if len(sys.argv) > 1 else 1)
