"""
Track Overlay Renderer.

Draws detections (white) and predictions (red) over video frames.
Output only: it receives committed snapshots and never touches the registry.
"""

from __future__ import annotations

import threading
from typing import Optional, Tuple

import cv2
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from objtracker.core.contracts import BoundingBox, TrackingFrame

DETECTION_COLOR = (255, 255, 255)  # BGR white
PREDICTION_COLOR = (0, 0, 255)     # BGR red


class TrackOverlayRenderer:
    """
    Observer that renders the latest tracking snapshot.

    Register an instance with TrackerService.add_observer(); feed camera
    frames through set_image(). Without images it draws on a blank canvas.
    """

    def __init__(
        self,
        window_name: str = "Tracker (white = detections, red = predictions)",
        display: bool = False,
        canvas_size: Tuple[int, int] = (480, 640),
        draw_labels: bool = True,
    ):
        """
        Initialize overlay renderer.

        Args:
            window_name: OpenCV window title
            display: Show rendered frames in a window
            canvas_size: (height, width) of the blank canvas
            draw_labels: Write class/id next to each detection
        """
        self.window_name = window_name
        self.display = display
        self.canvas_size = canvas_size
        self.draw_labels = draw_labels

        self._lock = threading.Lock()
        self._latest_frame: Optional[TrackingFrame] = None
        self._latest_image: Optional[NDArray[np.uint8]] = None
        self._window_open = False

    def __call__(self, frame: TrackingFrame):
        """Observer entry point, called after each committed batch."""
        with self._lock:
            self._latest_frame = frame

        if self.display:
            self.show(self.render())

    def set_image(self, image: NDArray[np.uint8]):
        """Store the most recent camera frame."""
        with self._lock:
            self._latest_image = image

    def render(self, image: Optional[NDArray[np.uint8]] = None) -> NDArray[np.uint8]:
        """
        Draw the latest snapshot onto a copy of an image.

        Args:
            image: Gray or BGR frame; defaults to the last set_image() frame

        Returns:
            BGR frame with boxes drawn
        """
        with self._lock:
            frame = self._latest_frame
            if image is None:
                image = self._latest_image

        canvas = self._to_bgr(image)
        if frame is None:
            return canvas

        for detection in frame.detections:
            self._draw_box(canvas, detection.box, DETECTION_COLOR)
            if self.draw_labels:
                x_min, y_min, _, _ = detection.box.corners
                cv2.putText(
                    canvas, f"{detection.class_id}:{detection.object_id}",
                    (x_min, max(y_min - 4, 10)),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.4, DETECTION_COLOR, 1,
                )

        for prediction in frame.predictions:
            self._draw_box(canvas, prediction.predicted_box, PREDICTION_COLOR)

        return canvas

    def _to_bgr(self, image: Optional[NDArray[np.uint8]]) -> NDArray[np.uint8]:
        if image is None:
            return np.zeros((*self.canvas_size, 3), dtype=np.uint8)
        if image.ndim == 2:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        if image.shape[2] == 1:
            return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2BGR)
        return image.copy()

    @staticmethod
    def _draw_box(canvas: NDArray[np.uint8], box: BoundingBox, color: Tuple[int, int, int]):
        x_min, y_min, x_max, y_max = box.corners
        cv2.rectangle(canvas, (x_min, y_min), (x_max, y_max), color, 1)

    def show(self, canvas: NDArray[np.uint8]):
        if not self._window_open:
            cv2.namedWindow(self.window_name, cv2.WINDOW_AUTOSIZE)
            self._window_open = True
        cv2.imshow(self.window_name, canvas)
        cv2.waitKey(1)

    def close(self):
        """Close the renderer window."""
        if self._window_open:
            cv2.destroyWindow(self.window_name)
            self._window_open = False
            logger.debug("Overlay window closed")
