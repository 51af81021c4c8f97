import datetime
import kopf
from myapp.resources import MyAppResource


# Liveness probe
@kopf.on.probe(id="now")
def get_current_timestamp(**kwargs):
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@kopf.on.probe(id="sensors")
def get_sensors(**kwargs):
    return MyAppResource.sensor.asdict()
