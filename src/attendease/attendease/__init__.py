"""AttendEase punch service.

Feature modules (storage, faces, employees, attendance) follow the same
model / repository / service / controller split, wired in ``container.py``.
"""
