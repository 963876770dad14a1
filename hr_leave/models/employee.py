"""
Employee model - the requester, approver and ledger owner of the leave domain
"""
import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from hr_leave.db.base import Base


class Role(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    HR = "HR"
    ADMIN = "ADMIN"


class Employee(Base):
    """
    reporting_manager_id forms the reporting tree a MANAGER may decide for
    (direct and indirect reportees). role is stored as its string value.
    """
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    emp_code = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, default=Role.EMPLOYEE.value)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=False, index=True)
    reporting_manager_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    password_hash = Column(String, nullable=True)
    join_date = Column(Date, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    organization = relationship("Organization")
    department = relationship("Department", backref="employees")
    reporting_manager = relationship("Employee", remote_side=[id], backref="direct_reports")
    leave_requests = relationship("LeaveRequest", foreign_keys="LeaveRequest.employee_id", back_populates="employee")

    __table_args__ = (
        # Reporting-tree walks look up direct reports by manager
        Index("ix_employees_reporting_manager_id", "reporting_manager_id"),
    )
