import os
from datetime import datetime
import pytz


def get_app_timezone():
    """Timezone used for stored timestamps"""
    return pytz.timezone(os.environ.get('APP_TIMEZONE', 'Asia/Colombo'))


def get_local_time():
    return datetime.now(get_app_timezone())


def get_local_time_naive():
    """Get current local time as naive datetime for database storage"""
    return get_local_time().replace(tzinfo=None)


def get_local_date():
    return get_local_time().date()
