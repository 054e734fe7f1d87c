# rentpulse — Domain Services
