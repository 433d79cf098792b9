"""
Inertial pedestrian tracking: step detection, gyro/magnetic heading
fusion and a confidence-tracked relative position.
"""
