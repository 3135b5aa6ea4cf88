from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import StringField, BooleanField, FloatField, IntegerField, DateField, DateTimeField, DecimalField, TextAreaField
from wtforms.validators import DataRequired, InputRequired, Length, Optional, NumberRange, AnyOf, Regexp, ValidationError

from models import (TripStatus, TripPriority, ApprovalStatus, AssignmentStatus, VehicleStatus,
                    IgnitionStatus, PaymentMethod, TripLogStatus)
from services.exceptions import ValidationError as PayloadValidationError
from timezone_utils import get_local_date

TIME_PATTERN = r'^([01]\d|2[0-3]):([0-5]\d)$'
MONTH_PATTERN = r'^\d{4}-(0[1-9]|1[0-2])$'
DATETIME_FORMATS = ['%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%S.%f', '%Y-%m-%dT%H:%M', '%Y-%m-%d %H:%M:%S']


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


def json_formdata(payload):
    """Flatten a JSON object into the string MultiDict WTForms expects"""
    formdata = MultiDict()
    for key, value in payload.items():
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            formdata.add(key, 'true' if value else 'false')
        else:
            formdata.add(key, str(value))
    return formdata


def load_json_form(form_class, payload):
    """
    Validate a JSON payload with a form and return the cleaned values of
    the fields the client actually sent.
    """
    if not isinstance(payload, dict):
        raise PayloadValidationError('Request body must be a JSON object')
    form = form_class(formdata=json_formdata(payload), meta={'csrf': False})
    if not form.validate():
        raise PayloadValidationError('Validation failed', errors=form.errors)
    return {name: field.data for name, field in form._fields.items()
            if payload.get(name) is not None}


class TripRequestForm(FlaskForm):
    request_number = StringField('Request Number', validators=[Optional(), Length(max=32)])
    requested_by_user_id = StringField('Requested By', validators=[Optional(), Length(max=36)])

    # Route
    from_address = StringField('From', validators=[DataRequired(), Length(max=500)])
    from_lat = FloatField('From Latitude', validators=[Optional(), NumberRange(min=-90, max=90)])
    from_lng = FloatField('From Longitude', validators=[Optional(), NumberRange(min=-180, max=180)])
    to_address = StringField('To', validators=[DataRequired(), Length(max=500)])
    to_lat = FloatField('To Latitude', validators=[Optional(), NumberRange(min=-90, max=90)])
    to_lng = FloatField('To Longitude', validators=[Optional(), NumberRange(min=-180, max=180)])

    # Schedule
    departure_date = DateField('Departure Date', validators=[DataRequired()])
    departure_time = StringField('Departure Time', validators=[DataRequired(), Regexp(TIME_PATTERN, message='Time must be HH:mm')])
    return_date = DateField('Return Date', validators=[Optional()])
    return_time = StringField('Return Time', validators=[Optional(), Regexp(TIME_PATTERN, message='Time must be HH:mm')])
    is_round_trip = BooleanField('Round Trip')
    estimated_distance = FloatField('Estimated Distance', validators=[Optional(), NumberRange(min=0)])
    estimated_duration = FloatField('Estimated Duration', validators=[Optional(), NumberRange(min=0)])

    # Purpose
    purpose_category = StringField('Purpose Category', validators=[DataRequired(), Length(max=100)])
    purpose_description = TextAreaField('Purpose', validators=[DataRequired()])
    project_code = StringField('Project Code', validators=[Optional(), Length(max=50)])
    cost_center = StringField('Cost Center', validators=[Optional(), Length(max=50)])
    business_justification = TextAreaField('Business Justification', validators=[Optional()])

    # Requirements
    vehicle_type = StringField('Vehicle Type', validators=[Optional(), Length(max=50)])
    passenger_count = IntegerField('Passengers', validators=[Optional(), NumberRange(min=1)])
    luggage = StringField('Luggage', validators=[Optional(), Length(max=200)])
    ac_required = BooleanField('AC Required')
    special_requirements = TextAreaField('Special Requirements', validators=[Optional()])

    priority = StringField('Priority', validators=[DataRequired(), AnyOf(enum_values(TripPriority))])
    estimated_cost = DecimalField('Estimated Cost', validators=[InputRequired(), NumberRange(min=0)])
    currency = StringField('Currency', validators=[Optional(), Length(min=3, max=3)])
    approval_required = BooleanField('Approval Required')

    def validate_return_date(self, field):
        if field.data and self.departure_date.data and field.data < self.departure_date.data:
            raise ValidationError('Return date cannot be before departure date')


class TripRequestUpdateForm(TripRequestForm):
    from_address = StringField('From', validators=[Optional(), Length(max=500)])
    to_address = StringField('To', validators=[Optional(), Length(max=500)])
    departure_date = DateField('Departure Date', validators=[Optional()])
    departure_time = StringField('Departure Time', validators=[Optional(), Regexp(TIME_PATTERN, message='Time must be HH:mm')])
    purpose_category = StringField('Purpose Category', validators=[Optional(), Length(max=100)])
    purpose_description = TextAreaField('Purpose', validators=[Optional()])
    priority = StringField('Priority', validators=[Optional(), AnyOf(enum_values(TripPriority))])
    estimated_cost = DecimalField('Estimated Cost', validators=[Optional(), NumberRange(min=0)])
    # Requesters may only withdraw; other statuses come from approvals and assignments
    status = StringField('Status', validators=[Optional(), AnyOf([TripStatus.PENDING.value, TripStatus.CANCELLED.value])])


class ApprovalStepForm(FlaskForm):
    approval_level = IntegerField('Level', validators=[InputRequired(), NumberRange(min=1)])
    approver_id = StringField('Approver', validators=[Optional(), Length(max=36)])
    approver_role = StringField('Approver Role', validators=[Optional(), Length(max=64)])


class ApprovalDecisionForm(FlaskForm):
    status = StringField('Decision', validators=[
        DataRequired(),
        AnyOf([ApprovalStatus.APPROVED.value, ApprovalStatus.REJECTED.value],
              message='Status must be Approved or Rejected')])
    comments = TextAreaField('Comments', validators=[Optional(), Length(max=500)])


class AssignmentForm(FlaskForm):
    trip_request_id = StringField('Trip Request', validators=[DataRequired(), Length(max=36)])
    vehicle_id = StringField('Vehicle', validators=[DataRequired(), Length(max=36)])
    driver_id = StringField('Driver', validators=[DataRequired(), Length(max=36)])
    status = StringField('Status', validators=[Optional(), AnyOf(enum_values(AssignmentStatus))])
    scheduled_departure = DateTimeField('Scheduled Departure', format=DATETIME_FORMATS, validators=[DataRequired()])
    scheduled_return = DateTimeField('Scheduled Return', format=DATETIME_FORMATS, validators=[Optional()])
    assignment_notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])

    def validate_scheduled_return(self, field):
        if field.data and self.scheduled_departure.data and field.data < self.scheduled_departure.data:
            raise ValidationError('Scheduled return cannot be before departure')


class AssignmentUpdateForm(AssignmentForm):
    trip_request_id = StringField('Trip Request', validators=[Optional(), Length(max=36)])
    vehicle_id = StringField('Vehicle', validators=[Optional(), Length(max=36)])
    driver_id = StringField('Driver', validators=[Optional(), Length(max=36)])
    scheduled_departure = DateTimeField('Scheduled Departure', format=DATETIME_FORMATS, validators=[Optional()])


class VehicleDetailsForm(FlaskForm):
    mileage = FloatField('Mileage', validators=[Optional(), NumberRange(min=0)])
    seating_capacity = IntegerField('Seating Capacity', validators=[Optional(), NumberRange(min=1)])
    insurance_expiry = DateField('Insurance Expiry', validators=[Optional()])
    last_service = DateField('Last Service', validators=[Optional()])
    next_service = DateField('Next Service', validators=[Optional()])
    status = StringField('Status', validators=[Optional(), AnyOf(enum_values(VehicleStatus))])


class DriverDetailsForm(FlaskForm):
    license_expiry_date = DateField('License Expiry', validators=[Optional()])


class GPSLogForm(FlaskForm):
    vehicle_id = StringField('Vehicle', validators=[DataRequired(), Length(max=36)])
    driver_id = StringField('Driver', validators=[Optional(), Length(max=36)])
    assignment_id = StringField('Assignment', validators=[Optional(), Length(max=36)])
    latitude = FloatField('Latitude', validators=[InputRequired(), NumberRange(min=-90, max=90)])
    longitude = FloatField('Longitude', validators=[InputRequired(), NumberRange(min=-180, max=180)])
    address = StringField('Address', validators=[Optional(), Length(max=500)])
    speed = FloatField('Speed', validators=[Optional(), NumberRange(min=0)])
    heading = FloatField('Heading', validators=[Optional(), NumberRange(min=0, max=360)])
    accuracy = FloatField('Accuracy', validators=[Optional(), NumberRange(min=0)])
    altitude = FloatField('Altitude', validators=[Optional()])
    ignition_status = StringField('Ignition', validators=[Optional(), AnyOf(enum_values(IgnitionStatus))])
    panic_button = BooleanField('Panic Button')
    battery_level = IntegerField('Battery', validators=[Optional(), NumberRange(min=0, max=100)])
    signal_strength = IntegerField('Signal', validators=[Optional()])
    geofence_status = StringField('Geofence', validators=[Optional(), Length(max=32)])
    speed_limit = FloatField('Speed Limit', validators=[Optional(), NumberRange(min=0)])
    speed_violation = BooleanField('Speed Violation')
    violation_count = IntegerField('Violations', validators=[Optional(), NumberRange(min=0)])
    mileage = FloatField('Mileage', validators=[Optional(), NumberRange(min=0)])
    device_timestamp = DateTimeField('Device Timestamp', format=DATETIME_FORMATS, validators=[DataRequired()])


class TripCostForm(FlaskForm):
    assignment_id = StringField('Assignment', validators=[DataRequired(), Length(max=36)])
    vendor_id = StringField('Vendor', validators=[Optional(), Length(max=36)])
    base_fare = DecimalField('Base Fare', validators=[Optional(), NumberRange(min=0)])
    distance_charges = DecimalField('Distance Charges', validators=[Optional(), NumberRange(min=0)])
    time_charges = DecimalField('Time Charges', validators=[Optional(), NumberRange(min=0)])
    fuel_cost = DecimalField('Fuel Cost', validators=[Optional(), NumberRange(min=0)])
    toll_charges = DecimalField('Toll Charges', validators=[Optional(), NumberRange(min=0)])
    parking_charges = DecimalField('Parking Charges', validators=[Optional(), NumberRange(min=0)])
    waiting_charges = DecimalField('Waiting Charges', validators=[Optional(), NumberRange(min=0)])
    night_surcharge = DecimalField('Night Surcharge', validators=[Optional(), NumberRange(min=0)])
    holiday_surcharge = DecimalField('Holiday Surcharge', validators=[Optional(), NumberRange(min=0)])
    driver_allowance = DecimalField('Driver Allowance', validators=[Optional(), NumberRange(min=0)])
    other_charges = DecimalField('Other Charges', validators=[Optional(), NumberRange(min=0)])
    discount = DecimalField('Discount', validators=[Optional(), NumberRange(min=0)])
    tax_percentage = DecimalField('Tax %', validators=[Optional(), NumberRange(min=0, max=100)])
    currency = StringField('Currency', validators=[Optional(), Length(min=3, max=3)])


class TripCostUpdateForm(TripCostForm):
    assignment_id = StringField('Assignment', validators=[Optional(), Length(max=36)])


class CostInvoiceForm(FlaskForm):
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])
    due_date = DateField('Due Date', validators=[Optional()])


class PaymentForm(FlaskForm):
    payment_method = StringField('Payment Method', validators=[Optional(), AnyOf(enum_values(PaymentMethod))])
    transaction_id = StringField('Transaction ID', validators=[Optional(), Length(max=100)])
    paid_at = DateTimeField('Paid At', format=DATETIME_FORMATS + ['%Y-%m-%d'], validators=[Optional()])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])


class InvoiceGenerateForm(FlaskForm):
    cab_service_id = StringField('Cab Service', validators=[DataRequired(), Length(max=36)])
    month = StringField('Month', validators=[DataRequired(), Regexp(MONTH_PATTERN, message='Month must be YYYY-MM')])
    due_date = DateField('Due Date', validators=[DataRequired()])
    notes = TextAreaField('Notes', validators=[Optional(), Length(max=500)])

    def validate_due_date(self, field):
        if field.data and field.data <= get_local_date():
            raise ValidationError('Due date must be in the future')


class TripLogForm(FlaskForm):
    trip_request_id = StringField('Trip Request', validators=[DataRequired(), Length(max=36)])
    assignment_id = StringField('Assignment', validators=[DataRequired(), Length(max=36)])
    trip_number = StringField('Trip Number', validators=[DataRequired(), Length(max=100)])
    trip_date = DateField('Trip Date', validators=[Optional()])
    trip_status = StringField('Trip Status', validators=[Optional(), AnyOf(enum_values(TripLogStatus))])

    from_location = StringField('From', validators=[DataRequired(), Length(max=500)])
    to_location = StringField('To', validators=[DataRequired(), Length(max=500)])
    passenger_name = StringField('Passenger', validators=[Optional(), Length(max=255)])
    passenger_department = StringField('Passenger Department', validators=[Optional(), Length(max=255)])
    driver_name = StringField('Driver', validators=[Optional(), Length(max=255)])
    vehicle_registration = StringField('Vehicle', validators=[Optional(), Length(max=100)])

    planned_distance = DecimalField('Planned Distance', validators=[Optional(), NumberRange(min=0)])
    planned_departure = DateTimeField('Planned Departure', format=DATETIME_FORMATS, validators=[Optional()])
    planned_arrival = DateTimeField('Planned Arrival', format=DATETIME_FORMATS, validators=[Optional()])

    def validate_planned_arrival(self, field):
        if field.data and self.planned_departure.data and field.data < self.planned_departure.data:
            raise ValidationError('Planned arrival cannot be before planned departure')


class TripLogUpdateForm(FlaskForm):
    """Fields recorded while and after the trip is driven"""
    trip_status = StringField('Trip Status', validators=[Optional(), AnyOf(enum_values(TripLogStatus))])
    actual_distance = DecimalField('Actual Distance', validators=[Optional(), NumberRange(min=0)])
    actual_departure = DateTimeField('Actual Departure', format=DATETIME_FORMATS, validators=[Optional()])
    actual_arrival = DateTimeField('Actual Arrival', format=DATETIME_FORMATS, validators=[Optional()])
    total_cost = DecimalField('Total Cost', validators=[Optional(), NumberRange(min=0)])
    fuel_cost = DecimalField('Fuel Cost', validators=[Optional(), NumberRange(min=0)])
    toll_charges = DecimalField('Toll Charges', validators=[Optional(), NumberRange(min=0)])
    on_time = BooleanField('On Time', validators=[Optional()])
    overall_rating = IntegerField('Rating', validators=[Optional(), NumberRange(min=1, max=5)])
    comments = TextAreaField('Comments', validators=[Optional(), Length(max=2000)])
