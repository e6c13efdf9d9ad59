import asyncio

from asyupload.unicomm import logger
from asyupload.unicomm.common.target import UniTarget
from asyupload.unicomm.common.connection import UniConnection


class UniServer:
	def __init__(self, target:UniTarget, buffer_size:int = 65535, bound_evt:asyncio.Event = None):
		self.target = target
		self.buffer_size = buffer_size
		self.connection_queue = asyncio.Queue()
		self.bound_evt = bound_evt if bound_evt is not None else asyncio.Event()
		self.bound_port = None

	async def __handle_connection(self, reader, writer):
		connection = UniConnection(reader, writer, self.buffer_size)
		await self.connection_queue.put(connection)

	async def serve(self):
		"""
		Binds the listening socket and yields a UniConnection for every accepted client.
		Bind failures are raised to the caller.
		"""
		server = None
		try:
			server = await asyncio.start_server(
				self.__handle_connection,
				self.target.get_ip_or_hostname(),
				self.target.port
			)
			self.bound_port = server.sockets[0].getsockname()[1]
			logger.debug('Listening on %s:%s' % (self.target.get_ip_or_hostname(), self.bound_port))
			self.bound_evt.set()
			while server.is_serving():
				connection = await self.connection_queue.get()
				yield connection
		finally:
			if server is not None:
				server.close()
