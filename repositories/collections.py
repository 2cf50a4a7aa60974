APPOINTMENTS = "appointments"
APPOINTMENT_REQUESTS = "appointment_requests"
RESOURCES = "resources"
CLIENTS = "clients"
PETS = "pets"
SERVICE_TYPES = "service_types"
ROLES = "roles"
