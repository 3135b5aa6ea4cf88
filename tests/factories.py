"""
factory_boy factories for test data generation
"""

from datetime import datetime, timedelta
from decimal import Decimal

import factory
from factory import Faker

from app import db
from models import (Department, User, CabService, Vehicle, VehicleStatus, Driver, GPSDevice,
                    TripRequest, TripStatus, TripPriority, ApprovalStep, ApprovalStatus,
                    Assignment, AssignmentStatus, GPSLog, IgnitionStatus, TripCost, CostPaymentStatus,
                    Invoice, InvoiceStatus, TripLog, TripLogStatus)
from timezone_utils import get_local_date, get_local_time_naive


class BaseFactory(factory.alchemy.SQLAlchemyModelFactory):
    class Meta:
        abstract = True
        sqlalchemy_session = db.session
        sqlalchemy_session_persistence = "commit"


class DepartmentFactory(BaseFactory):
    class Meta:
        model = Department

    name = factory.Sequence(lambda n: f"Department {n}")


class UserFactory(BaseFactory):
    class Meta:
        model = User

    email = factory.Sequence(lambda n: f"employee{n}@fleetdesk.test")
    first_name = Faker('first_name')
    last_name = Faker('last_name')
    employee_id = factory.Sequence(lambda n: f"EMP{n:05d}")
    department = factory.SubFactory(DepartmentFactory)


class CabServiceFactory(BaseFactory):
    class Meta:
        model = CabService

    name = factory.Sequence(lambda n: f"Cab Service {n}")
    contact_email = factory.Sequence(lambda n: f"dispatch{n}@cabs.test")
    is_active = True


class VehicleFactory(BaseFactory):
    class Meta:
        model = Vehicle

    registration_number = factory.Sequence(lambda n: f"WP-CAB-{n:04d}")
    vehicle_type = 'Sedan'
    make = 'Toyota'
    model = 'Axio'
    seating_capacity = 4
    operational_status = VehicleStatus.ACTIVE
    cab_service = factory.SubFactory(CabServiceFactory)


class DriverFactory(BaseFactory):
    class Meta:
        model = Driver

    first_name = Faker('first_name')
    last_name = Faker('last_name')
    phone = factory.Sequence(lambda n: f"+9477{n:07d}")
    license_number = factory.Sequence(lambda n: f"B{n:07d}")
    license_expiry_date = factory.LazyFunction(lambda: get_local_date() + timedelta(days=365))
    cab_service = factory.SubFactory(CabServiceFactory)


class GPSDeviceFactory(BaseFactory):
    class Meta:
        model = GPSDevice

    vehicle = factory.SubFactory(VehicleFactory)
    device_id = factory.Sequence(lambda n: f"TRK-{n:06d}")
    imei = factory.Sequence(lambda n: f"{350000000000000 + n}")
    firmware_version = '2.4.1'
    manufacturer = 'Teltonika'
    network_provider = 'Dialog'


class TripRequestFactory(BaseFactory):
    class Meta:
        model = TripRequest

    request_number = factory.Sequence(lambda n: f"REQ-{n:06d}-001")
    requester = factory.SubFactory(UserFactory)
    from_address = 'World Trade Center, Colombo 01'
    from_lat = 6.9330
    from_lng = 79.8430
    to_address = 'Bandaranaike International Airport, Katunayake'
    to_lat = 7.1808
    to_lng = 79.8841
    departure_date = factory.LazyFunction(lambda: get_local_date() + timedelta(days=3))
    departure_time = '08:30'
    purpose_category = 'Client Visit'
    purpose_description = 'Airport pickup for visiting client'
    priority = TripPriority.MEDIUM
    status = TripStatus.PENDING
    estimated_cost = Decimal('12000.00')
    currency = 'LKR'
    approval_required = True


class ApprovalStepFactory(BaseFactory):
    class Meta:
        model = ApprovalStep

    trip_request = factory.SubFactory(TripRequestFactory)
    approval_level = factory.Sequence(lambda n: n + 1)
    approver_role = 'Approver'
    status = ApprovalStatus.PENDING


class AssignmentFactory(BaseFactory):
    class Meta:
        model = Assignment

    trip_request = factory.SubFactory(TripRequestFactory, status=TripStatus.ASSIGNED)
    vehicle = factory.SubFactory(VehicleFactory)
    driver = factory.SubFactory(DriverFactory)
    status = AssignmentStatus.ASSIGNED
    scheduled_departure = factory.LazyFunction(lambda: get_local_time_naive() + timedelta(days=3))


class GPSLogFactory(BaseFactory):
    class Meta:
        model = GPSLog

    vehicle = factory.SubFactory(VehicleFactory)
    latitude = 6.9271
    longitude = 79.8612
    speed = 0.0
    ignition_status = IgnitionStatus.OFF
    panic_button = False
    device_timestamp = factory.LazyFunction(get_local_time_naive)
    server_timestamp = factory.LazyFunction(get_local_time_naive)


class TripCostFactory(BaseFactory):
    class Meta:
        model = TripCost

    assignment = factory.SubFactory(AssignmentFactory)
    vendor_id = factory.LazyAttribute(lambda o: o.assignment.vehicle.cab_service_id)
    base_fare = Decimal('5000.00')
    distance_charges = Decimal('0.00')
    time_charges = Decimal('0.00')
    fuel_cost = Decimal('0.00')
    toll_charges = Decimal('0.00')
    parking_charges = Decimal('0.00')
    waiting_charges = Decimal('0.00')
    night_surcharge = Decimal('0.00')
    holiday_surcharge = Decimal('0.00')
    driver_allowance = Decimal('0.00')
    other_charges = Decimal('0.00')
    discount = Decimal('0.00')
    tax_percentage = Decimal('0.00')
    sub_total = factory.LazyAttribute(lambda o: o.base_fare)
    tax_amount = Decimal('0.00')
    total_cost = factory.LazyAttribute(lambda o: o.base_fare)
    currency = 'LKR'
    payment_status = CostPaymentStatus.DRAFT
    created_at = factory.LazyFunction(get_local_time_naive)


class InvoiceFactory(BaseFactory):
    class Meta:
        model = Invoice

    invoice_number = factory.Sequence(lambda n: f"INV-TEST-{n:06d}")
    cab_service = factory.SubFactory(CabServiceFactory)
    billing_month = factory.LazyFunction(lambda: datetime.now().strftime('%Y-%m'))
    total_amount = Decimal('0.00')
    currency = 'LKR'
    status = InvoiceStatus.PENDING
    invoice_date = factory.LazyFunction(get_local_date)
    due_date = factory.LazyFunction(lambda: get_local_date() + timedelta(days=30))


class TripLogFactory(BaseFactory):
    class Meta:
        model = TripLog

    assignment = factory.SubFactory(AssignmentFactory)
    trip_request = factory.LazyAttribute(lambda o: o.assignment.trip_request)
    trip_number = factory.Sequence(lambda n: f"TL-{n:06d}")
    trip_date = factory.LazyFunction(get_local_date)
    trip_status = TripLogStatus.NOT_STARTED
    from_location = 'World Trade Center, Colombo 01'
    to_location = 'Bandaranaike International Airport, Katunayake'
    passenger_name = Faker('name')
    driver_name = factory.LazyAttribute(lambda o: o.assignment.driver.full_name)
    vehicle_registration = factory.LazyAttribute(lambda o: o.assignment.vehicle.registration_number)
    planned_distance = Decimal('32.50')
