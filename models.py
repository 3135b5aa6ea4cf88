from datetime import date
from decimal import Decimal
from app import db
from sqlalchemy import Index, CheckConstraint, UniqueConstraint
from enum import Enum
import uuid
from timezone_utils import get_local_time_naive


def generate_uuid():
    return str(uuid.uuid4())


# Enums for better data integrity
class TripStatus(Enum):
    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'
    CANCELLED = 'Cancelled'
    ASSIGNED = 'Assigned'
    IN_PROGRESS = 'In Progress'
    COMPLETED = 'Completed'

class TripPriority(Enum):
    LOW = 'Low'
    MEDIUM = 'Medium'
    HIGH = 'High'
    URGENT = 'Urgent'

class ApprovalStatus(Enum):
    PENDING = 'Pending'
    APPROVED = 'Approved'
    REJECTED = 'Rejected'

class AssignmentStatus(Enum):
    ASSIGNED = 'Assigned'
    ACCEPTED = 'Accepted'
    REJECTED = 'Rejected'
    STARTED = 'Started'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'

class VehicleStatus(Enum):
    ACTIVE = 'Active'
    MAINTENANCE = 'Maintenance'
    INACTIVE = 'Inactive'

class IgnitionStatus(Enum):
    ON = 'On'
    OFF = 'Off'

class CostPaymentStatus(Enum):
    DRAFT = 'Draft'
    PENDING = 'Pending'
    PAID = 'Paid'
    OVERDUE = 'Overdue'

class InvoiceStatus(Enum):
    DRAFT = 'Draft'
    PENDING = 'Pending'
    PAID = 'Paid'
    OVERDUE = 'Overdue'
    NO_CHARGES = 'NoCharges'

class PaymentMethod(Enum):
    BANK_TRANSFER = 'bank_transfer'
    CHECK = 'check'
    NEFT = 'neft'
    RTGS = 'rtgs'
    UPI = 'upi'
    CASH = 'cash'


class TripLogStatus(Enum):
    NOT_STARTED = 'Not Started'
    STARTED = 'Started'
    IN_TRANSIT = 'In Transit'
    ARRIVED = 'Arrived'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'


class Department(db.Model):
    __tablename__ = 'departments'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    def __repr__(self):
        return f'<Department {self.name}>'


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    email = db.Column(db.String(120), unique=True, nullable=False)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64))
    employee_id = db.Column(db.String(32), unique=True)
    department_id = db.Column(db.String(36), db.ForeignKey('departments.id'), index=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    department = db.relationship('Department', backref='users')

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f'<User {self.email}>'


class CabService(db.Model):
    """Transport vendor supplying vehicles and drivers"""
    __tablename__ = 'cab_services'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(150), nullable=False, unique=True)
    contact_email = db.Column(db.String(120))
    contact_phone = db.Column(db.String(20))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    def __repr__(self):
        return f'<CabService {self.name}>'


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    registration_number = db.Column(db.String(20), unique=True, nullable=False)
    vehicle_type = db.Column(db.String(50))
    make = db.Column(db.String(50))
    model = db.Column(db.String(50))
    seating_capacity = db.Column(db.Integer, default=4)
    operational_status = db.Column(db.Enum(VehicleStatus), default=VehicleStatus.ACTIVE, nullable=False)
    total_kilometers = db.Column(db.Float, default=0.0)
    cab_service_id = db.Column(db.String(36), db.ForeignKey('cab_services.id'), index=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    cab_service = db.relationship('CabService', backref='vehicles')
    gps_devices = db.relationship('GPSDevice', backref='vehicle', order_by='GPSDevice.installed_at')

    def __repr__(self):
        return f'<Vehicle {self.registration_number}>'


class Driver(db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), index=True)
    first_name = db.Column(db.String(64), nullable=False)
    last_name = db.Column(db.String(64))
    phone = db.Column(db.String(20))
    license_number = db.Column(db.String(50), unique=True)
    license_expiry_date = db.Column(db.Date)
    cab_service_id = db.Column(db.String(36), db.ForeignKey('cab_services.id'), index=True)
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    user = db.relationship('User', backref='driver_profile')
    cab_service = db.relationship('CabService', backref='drivers')

    @property
    def full_name(self):
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def __repr__(self):
        return f'<Driver {self.full_name}>'


class GPSDevice(db.Model):
    __tablename__ = 'gps_devices'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    vehicle_id = db.Column(db.String(36), db.ForeignKey('vehicles.id'), nullable=False, index=True)
    device_id = db.Column(db.String(64), unique=True, nullable=False)
    imei = db.Column(db.String(20))
    firmware_version = db.Column(db.String(32))
    manufacturer = db.Column(db.String(64))
    network_provider = db.Column(db.String(64))
    installed_at = db.Column(db.DateTime, default=get_local_time_naive)


class TripRequest(db.Model):
    __tablename__ = 'trip_requests'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    request_number = db.Column(db.String(32), unique=True, nullable=False)
    requested_by_user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)

    # Route
    from_address = db.Column(db.String(500), nullable=False)
    from_lat = db.Column(db.Float)
    from_lng = db.Column(db.Float)
    to_address = db.Column(db.String(500), nullable=False)
    to_lat = db.Column(db.Float)
    to_lng = db.Column(db.Float)

    # Schedule
    departure_date = db.Column(db.Date, nullable=False, index=True)
    departure_time = db.Column(db.String(5), nullable=False)  # HH:MM
    return_date = db.Column(db.Date)
    return_time = db.Column(db.String(5))
    is_round_trip = db.Column(db.Boolean, default=False)
    estimated_distance = db.Column(db.Float, default=0.0)
    estimated_duration = db.Column(db.Float, default=0.0)

    # Purpose
    purpose_category = db.Column(db.String(100), nullable=False)
    purpose_description = db.Column(db.Text, nullable=False)
    project_code = db.Column(db.String(50))
    cost_center = db.Column(db.String(50))
    business_justification = db.Column(db.Text)

    # Requirements
    vehicle_type = db.Column(db.String(50))
    passenger_count = db.Column(db.Integer, default=1)
    luggage = db.Column(db.String(200))
    ac_required = db.Column(db.Boolean, default=True)
    special_requirements = db.Column(db.Text)

    priority = db.Column(db.Enum(TripPriority), nullable=False, default=TripPriority.MEDIUM)
    status = db.Column(db.Enum(TripStatus), nullable=False, default=TripStatus.PENDING, index=True)
    estimated_cost = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    currency = db.Column(db.String(3), nullable=False, default='LKR')
    approval_required = db.Column(db.Boolean, default=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    requester = db.relationship('User', backref='trip_requests')
    approval_steps = db.relationship('ApprovalStep', backref='trip_request',
                                     cascade='all, delete-orphan',
                                     order_by='ApprovalStep.approval_level')
    assignments = db.relationship('Assignment', backref='trip_request')

    __table_args__ = (
        CheckConstraint('passenger_count >= 1', name='check_passenger_count_positive'),
        CheckConstraint('estimated_cost >= 0', name='check_estimated_cost_non_negative'),
    )

    def __repr__(self):
        return f'<TripRequest {self.request_number}>'


class ApprovalStep(db.Model):
    __tablename__ = 'trip_approvals'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    trip_request_id = db.Column(db.String(36), db.ForeignKey('trip_requests.id'), nullable=False, index=True)
    approval_level = db.Column(db.Integer, nullable=False)
    approver_id = db.Column(db.String(36), db.ForeignKey('users.id'), index=True)
    approver_role = db.Column(db.String(64), default='Approver')
    status = db.Column(db.Enum(ApprovalStatus), nullable=False, default=ApprovalStatus.PENDING, index=True)
    comments = db.Column(db.String(500))
    decided_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=get_local_time_naive)

    approver = db.relationship('User')

    __table_args__ = (
        UniqueConstraint('trip_request_id', 'approval_level', name='uq_trip_approval_level'),
    )

    def __repr__(self):
        return f'<ApprovalStep L{self.approval_level} {self.status.value}>'


class Assignment(db.Model):
    __tablename__ = 'trip_assignments'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    trip_request_id = db.Column(db.String(36), db.ForeignKey('trip_requests.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.String(36), db.ForeignKey('vehicles.id'), nullable=False, index=True)
    driver_id = db.Column(db.String(36), db.ForeignKey('drivers.id'), nullable=False, index=True)
    assigned_by_id = db.Column(db.String(36), db.ForeignKey('users.id'))
    status = db.Column(db.Enum(AssignmentStatus), nullable=False, default=AssignmentStatus.ASSIGNED, index=True)
    scheduled_departure = db.Column(db.DateTime, nullable=False)
    scheduled_return = db.Column(db.DateTime)
    assignment_notes = db.Column(db.String(500))

    # Denormalized overrides, never written back to the vehicle/driver rows
    vehicle_details = db.Column(db.JSON)
    driver_details = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    vehicle = db.relationship('Vehicle', backref='assignments')
    driver = db.relationship('Driver', backref='assignments')
    assigned_by = db.relationship('User')

    def __repr__(self):
        return f'<Assignment {self.id} {self.status.value}>'


class GPSLog(db.Model):
    """Append-only telemetry ping"""
    __tablename__ = 'gps_logs'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    vehicle_id = db.Column(db.String(36), db.ForeignKey('vehicles.id'), nullable=False, index=True)
    driver_id = db.Column(db.String(36), db.ForeignKey('drivers.id'), index=True)
    assignment_id = db.Column(db.String(36), db.ForeignKey('trip_assignments.id'), index=True)

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    address = db.Column(db.String(500))
    speed = db.Column(db.Float, default=0.0)  # km/h
    heading = db.Column(db.Float)
    accuracy = db.Column(db.Float)  # meters
    altitude = db.Column(db.Float)

    ignition_status = db.Column(db.Enum(IgnitionStatus), nullable=False, default=IgnitionStatus.OFF)
    panic_button = db.Column(db.Boolean, nullable=False, default=False)
    battery_level = db.Column(db.Integer)
    signal_strength = db.Column(db.Integer)
    geofence_status = db.Column(db.String(32))
    speed_limit = db.Column(db.Float)
    speed_violation = db.Column(db.Boolean, default=False)
    violation_count = db.Column(db.Integer, default=0)
    mileage = db.Column(db.Float)

    device_timestamp = db.Column(db.DateTime, nullable=False)
    server_timestamp = db.Column(db.DateTime, nullable=False, default=get_local_time_naive)

    vehicle = db.relationship('Vehicle')
    driver = db.relationship('Driver')
    assignment = db.relationship('Assignment', backref='gps_logs')

    __table_args__ = (
        Index('idx_gps_logs_assignment_device_ts', 'assignment_id', 'device_timestamp'),
        Index('idx_gps_logs_server_ts_desc', 'server_timestamp'),
        CheckConstraint('latitude >= -90 AND latitude <= 90', name='check_gps_latitude_range'),
        CheckConstraint('longitude >= -180 AND longitude <= 180', name='check_gps_longitude_range'),
        CheckConstraint('speed IS NULL OR speed >= 0', name='check_gps_speed_positive'),
        CheckConstraint('battery_level IS NULL OR (battery_level >= 0 AND battery_level <= 100)',
                        name='check_gps_battery_range'),
    )

    def __repr__(self):
        return f'<GPSLog {self.vehicle_id} at {self.latitude},{self.longitude}>'


class Invoice(db.Model):
    __tablename__ = 'invoices'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    invoice_number = db.Column(db.String(64), unique=True, nullable=False)
    cab_service_id = db.Column(db.String(36), db.ForeignKey('cab_services.id'), nullable=False, index=True)
    billing_month = db.Column(db.String(7), nullable=False, index=True)  # YYYY-MM
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    currency = db.Column(db.String(3), nullable=False, default='LKR')
    status = db.Column(db.Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    invoice_date = db.Column(db.Date, nullable=False, default=date.today)
    due_date = db.Column(db.Date)
    paid_date = db.Column(db.DateTime)
    transaction_id = db.Column(db.String(100))
    payment_method = db.Column(db.Enum(PaymentMethod))
    notes = db.Column(db.Text)
    created_by_id = db.Column(db.String(36), db.ForeignKey('users.id'))

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    cab_service = db.relationship('CabService', backref='invoices')
    trip_costs = db.relationship('TripCost', backref='invoice')

    def __repr__(self):
        return f'<Invoice {self.invoice_number}>'


class TripCost(db.Model):
    __tablename__ = 'trip_costs'

    # Itemized charge columns summed into sub_total
    CHARGE_FIELDS = (
        'base_fare', 'distance_charges', 'time_charges', 'fuel_cost',
        'toll_charges', 'parking_charges', 'waiting_charges',
        'night_surcharge', 'holiday_surcharge', 'driver_allowance',
        'other_charges',
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    assignment_id = db.Column(db.String(36), db.ForeignKey('trip_assignments.id'), nullable=False, index=True)
    vendor_id = db.Column(db.String(36), db.ForeignKey('cab_services.id'), index=True)

    base_fare = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    distance_charges = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    time_charges = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    fuel_cost = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    toll_charges = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    parking_charges = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    waiting_charges = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    night_surcharge = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    holiday_surcharge = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    driver_allowance = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    other_charges = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    discount = db.Column(db.Numeric(12, 2), default=Decimal('0.00'))
    tax_percentage = db.Column(db.Numeric(5, 2), default=Decimal('0.00'))
    currency = db.Column(db.String(3), nullable=False, default='LKR')

    sub_total = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal('0.00'))

    invoice_id = db.Column(db.String(36), db.ForeignKey('invoices.id'), index=True)
    invoice_number = db.Column(db.String(64))
    invoice_date = db.Column(db.Date)
    payment_status = db.Column(db.Enum(CostPaymentStatus), nullable=False,
                               default=CostPaymentStatus.DRAFT, index=True)
    payment_method = db.Column(db.Enum(PaymentMethod))
    paid_at = db.Column(db.DateTime)
    details = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    assignment = db.relationship('Assignment', backref='trip_costs')
    vendor = db.relationship('CabService')

    __table_args__ = (
        Index('idx_trip_costs_uninvoiced', 'invoice_id', 'created_at'),
        CheckConstraint('tax_percentage >= 0 AND tax_percentage <= 100', name='check_tax_percentage_range'),
    )

    def __repr__(self):
        return f'<TripCost {self.id} {self.total_cost}>'


class TripLog(db.Model):
    """Operational record of a trip as driven, kept alongside the GPS trail"""
    __tablename__ = 'trip_logs'

    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    trip_request_id = db.Column(db.String(36), db.ForeignKey('trip_requests.id'), nullable=False, index=True)
    assignment_id = db.Column(db.String(36), db.ForeignKey('trip_assignments.id'), nullable=False, index=True)
    trip_number = db.Column(db.String(100), unique=True, nullable=False)
    trip_date = db.Column(db.Date, nullable=False, index=True)
    trip_status = db.Column(db.Enum(TripLogStatus), nullable=False, default=TripLogStatus.NOT_STARTED, index=True)

    # Snapshot of who and where, as printed on the log sheet
    from_location = db.Column(db.String(500), nullable=False)
    to_location = db.Column(db.String(500), nullable=False)
    passenger_name = db.Column(db.String(255))
    passenger_department = db.Column(db.String(255))
    driver_name = db.Column(db.String(255))
    vehicle_registration = db.Column(db.String(100))

    planned_distance = db.Column(db.Numeric(10, 2))
    actual_distance = db.Column(db.Numeric(10, 2))
    planned_departure = db.Column(db.DateTime)
    planned_arrival = db.Column(db.DateTime)
    actual_departure = db.Column(db.DateTime)
    actual_arrival = db.Column(db.DateTime)
    total_duration = db.Column(db.Integer)  # minutes

    total_cost = db.Column(db.Numeric(12, 2))
    fuel_cost = db.Column(db.Numeric(12, 2))
    toll_charges = db.Column(db.Numeric(12, 2))
    on_time = db.Column(db.Boolean)
    overall_rating = db.Column(db.Integer)
    comments = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    trip_request = db.relationship('TripRequest', backref='trip_logs')
    assignment = db.relationship('Assignment', backref='trip_logs')

    __table_args__ = (
        CheckConstraint('overall_rating IS NULL OR (overall_rating >= 1 AND overall_rating <= 5)',
                        name='check_trip_log_rating_range'),
        CheckConstraint('total_duration IS NULL OR total_duration >= 0', name='check_trip_log_duration_positive'),
    )

    def __repr__(self):
        return f'<TripLog {self.trip_number} {self.trip_status.value}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), index=True)

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.String(36), index=True)
    new_values = db.Column(db.Text)  # JSON

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(255))
    correlation_id = db.Column(db.String(64))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    user = db.relationship('User')

    def __repr__(self):
        return f'<AuditLog {self.action} {self.entity_type}:{self.entity_id}>'
