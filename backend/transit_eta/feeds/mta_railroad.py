"""
MTA railroad extension to GTFS-RT StopTimeUpdate (field 1005).

LIRR and Metro-North publish the boarding track in this extension. The
bindings package does not ship it, so the descriptor is registered in the
default pool at import time, before any feed is parsed.
"""

from typing import Optional

import structlog
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.transit import gtfs_realtime_pb2

logger = structlog.get_logger()

EXTENSION_NAME = "transit_realtime.mta_railroad_stop_time_update"
EXTENSION_NUMBER = 1005

_Field = descriptor_pb2.FieldDescriptorProto


def _register_extension():
    pool = descriptor_pool.Default()
    try:
        return pool.FindExtensionByName(EXTENSION_NAME)
    except KeyError:
        pass

    proto = descriptor_pb2.FileDescriptorProto(
        name="gtfs-realtime-MTARR.proto",
        package="transit_realtime",
        syntax="proto2",
    )
    proto.dependency.append(gtfs_realtime_pb2.DESCRIPTOR.name)

    message = proto.message_type.add(name="MtaRailroadStopTimeUpdate")
    message.field.add(name="track", number=1, type=_Field.TYPE_STRING, label=_Field.LABEL_OPTIONAL)
    message.field.add(name="trainStatus", number=2, type=_Field.TYPE_STRING, label=_Field.LABEL_OPTIONAL)

    proto.extension.add(
        name="mta_railroad_stop_time_update",
        number=EXTENSION_NUMBER,
        label=_Field.LABEL_OPTIONAL,
        type=_Field.TYPE_MESSAGE,
        type_name=".transit_realtime.MtaRailroadStopTimeUpdate",
        extendee=".transit_realtime.TripUpdate.StopTimeUpdate",
    )

    pool.AddSerializedFile(proto.SerializeToString())
    extension = pool.FindExtensionByName(EXTENSION_NAME)
    message_factory.GetMessageClass(extension.message_type)
    return extension


try:
    TRACK_EXTENSION = _register_extension()
except (TypeError, ValueError, KeyError) as e:
    logger.warning("Railroad track extension unavailable", error=str(e))
    TRACK_EXTENSION = None


def read_track(stop_time_update) -> Optional[str]:
    """Track assignment carried by a StopTimeUpdate, if any."""
    if TRACK_EXTENSION is None:
        return None
    if not stop_time_update.HasExtension(TRACK_EXTENSION):
        return None
    track = stop_time_update.Extensions[TRACK_EXTENSION].track
    return track or None
