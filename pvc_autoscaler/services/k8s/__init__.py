"""
Kubernetes服务模块

- utils: 容量/时长转换等工具函数
- annotations: 注解常量与 Pod 索引
- store: 资源读写（PodDiskInspector、Pod、PVC、Event）
"""
