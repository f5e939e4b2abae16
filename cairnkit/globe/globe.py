# Imports
import numpy as np


class Globe:
    def __init__(self):
        """WGS-84 ellipsoid used for every scene position and camera computation"""
        self.a = 6378137.0                                    # Semi-major axis (m)
        self.b = 6356752.3142                                 # Semi-minor axis (m)
        self.f = 1/298.257223563                              # Flattening
        self.e2 = self.f * (2 - self.f)                       # First eccentricity squared
        self.R = 6371000.0                                    # Mean radius of Earth (m)


    def llaToEcef(self, lat, lon, alt):
        """Converts ellipsoid coordinates (latitude (deg), longitude (deg), altitude (HAE-m)) to ECEF (x,y,z in meters)."""
        lat = np.radians(lat)
        lon = np.radians(lon)
        N = self.a / np.sqrt(1 - self.e2 * np.sin(lat)**2)
        x = (N + alt) * np.cos(lat) * np.cos(lon)
        y = (N + alt) * np.cos(lat) * np.sin(lon)
        z = (N * (1 - self.e2) + alt) * np.sin(lat)
        return np.array([x, y, z])


    def ecefToLla(self, ecef, precision=1e-12):
        """ECEF to LLA conversion (WGS-84, iterative Bowring's method). Returns (lat, lon, alt) in degrees/meters."""
        x, y, z = ecef
        a, b, e2 = self.a, self.b, self.e2
        ep2 = (a**2)/(b**2) - 1
        lon = np.arctan2(y, x)
        p = np.sqrt(x**2 + y**2)
        theta = np.arctan2(z * a, p * b)
        lat = np.arctan2(z + ep2 * b * np.sin(theta)**3, p - e2 * a * np.cos(theta)**3)
        for _ in range(10):
            N = a / np.sqrt(1 - e2 * np.sin(lat)**2)
            alt = p / np.cos(lat) - N
            latNew = np.arctan2(z, p * (1 - e2 * N / (N + alt)))
            if np.abs(lat - latNew) < precision:
                lat = latNew
                break
            lat = latNew
        N = a / np.sqrt(1 - e2 * np.sin(lat)**2)
        alt = p / np.cos(lat) - N
        return float(np.degrees(lat)), float(np.degrees(lon)), float(alt)


    @staticmethod
    def enuRotation(refLat, refLon):
        """Rotation matrix taking ECEF deltas to ENU at a reference latitude/longitude (deg). Its transpose goes back."""
        refLat, refLon = np.radians(refLat), np.radians(refLon)
        return np.array([[-np.sin(refLon),                np.cos(refLon),                 0],
                         [-np.sin(refLat)*np.cos(refLon), -np.sin(refLat)*np.sin(refLon), np.cos(refLat)],
                         [ np.cos(refLat)*np.cos(refLon),  np.cos(refLat)*np.sin(refLon), np.sin(refLat)]])


    def ecefToEnu(self, ecef, refEcef, refLat, refLon):
        """Converts ECEF coordinates (m) to ENU (m,m,m) relative to a reference point."""
        return self.enuRotation(refLat, refLon) @ (np.asarray(ecef) - np.asarray(refEcef))


    def enuToEcef(self, enu, refEcef, refLat, refLon):
        """Inverse of ecefToEnu: ENU offset (m) from a reference point back to absolute ECEF (m)."""
        return np.asarray(refEcef) + self.enuRotation(refLat, refLon).T @ np.asarray(enu)
