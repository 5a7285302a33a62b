"""Real-time conversation sync and ownership core for the WhatsApp inbox console."""
