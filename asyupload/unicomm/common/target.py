import ipaddress


class UniTarget:
	"""Listening endpoint of a server"""
	def __init__(self, ip:str, port:int):
		self.hostname = None
		self.port = port

		if ip is None:
			raise ValueError('IP or hostname must be set!')

		try:
			ipaddress.ip_address(ip)
			self.ip = ip
		except ValueError:
			self.hostname = ip
			self.ip = None

		if not 0 <= self.port <= 65535:
			raise ValueError('Port out of range: %s' % self.port)

	def get_ip_or_hostname(self):
		if self.ip is not None:
			return self.ip
		return self.hostname
