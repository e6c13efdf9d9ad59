import logging

logger = logging.getLogger('asyupload.unicomm')
